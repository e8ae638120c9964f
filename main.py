"""
Main entry point for stickbot.

Usage:
    python main.py

Requirements:
    - YOUTUBE_API_KEY and OPENAI_API_KEY set (environment or .env)
    - config.yaml in the current directory
    - A video id with an active live chat (youtube.video_id)
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Add current directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from stickbot.core.chat_reactor import ChatReactor


def load_config(config_path: str = "config.yaml") -> dict:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file not found
        yaml.YAMLError: If config file is invalid
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Please create config.yaml in the current directory."
        )

    with open(config_file) as f:
        try:
            config = yaml.safe_load(f)
            return config or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid config file: {e}")


def check_environment(config: dict) -> None:
    """
    Check required environment variables.

    Raises:
        SystemExit: If an API key is missing
    """
    required = [
        config.get("youtube", {}).get("api_key_env", "YOUTUBE_API_KEY"),
        config.get("generation", {}).get("api_key_env", "OPENAI_API_KEY"),
    ]
    missing = [name for name in required if not os.getenv(name)]
    if missing:
        print("❌ Error: Required environment variables not set:")
        for name in missing:
            print(f"  - {name}")
        print()
        sys.exit(1)

    print("✅ Environment check passed")
    print()


def print_banner() -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  stickbot, a stick figure watching your live chat")
    print("=" * 60)
    print()
    print("  🧍 Reacts out loud to new chat messages")
    print("  💤 Fills the silence when chat goes quiet")
    print()
    print("=" * 60)
    print()


def print_instructions(config: dict) -> None:
    """Print usage instructions."""
    idle_s = config.get("reaction", {}).get("idle_timeout_s", 15.0)
    print()
    print("📋 Instructions:")
    print("  1. Press Enter to start (this turns on the audio)")
    print("  2. Chat away in the live stream")
    print(f"  3. If chat is quiet for {idle_s:.0f}s, the stick figure says something anyway")
    print("  4. Press Ctrl+C twice to exit")
    print()
    print("=" * 60)
    print()


async def main() -> None:
    """
    Main entry point.

    Loads configuration, checks environment, and starts the chat reactor.
    """
    try:
        print_banner()

        print("📄 Loading configuration...")
        config = load_config()
        print("  ✓ Configuration loaded")
        print()

        check_environment(config)
        print_instructions(config)

        reactor = ChatReactor(config)
        await reactor.run()

    except KeyboardInterrupt:
        print()
        print("  👋 Goodbye!")

    except Exception as e:
        print()
        print(f"❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
