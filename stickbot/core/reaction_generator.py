"""
Reaction generator — turns a batch of chat lines into a short spoken line.

Two steps per reaction:
1. OpenAI chat completion for the text. A non-empty batch gets the
   "react to chat" prompt; an empty batch gets one of the idle-chatter prompts.
2. OpenAI TTS for the audio (WAV).

The OpenAI SDK is synchronous, so both calls run in the default executor.
API failures raise; the reaction trigger absorbs them and drops the cycle.

Config (in config.yaml):
    generation:
      model: gpt-4o-mini
      temperature: 1.1
      history_size: 20
      system_prompt: "You are a funny stick figure bot."
    tts:
      model: tts-1
      voice: fable
      speed: 1.0
      timeout: 30.0
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from collections import deque
from typing import Deque, List, Optional

from stickbot.core.context import Utterance

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a funny stick figure bot."

PERSONA = (
    "You are a simplistic 3D stick figure living in a transparent void on a "
    "computer screen. You have big comical eyes and a very expressive personality. "
    "You are watching a YouTube livestream chat."
)

CHAT_FALLBACK_TEXT = "Interesting..."
IDLE_FALLBACK_TEXT = "So quiet..."

# Idle chatter: the chat has gone quiet and the figure fills the silence.
IDLE_PROMPTS = [
    "[idle] The chat has been quiet for a while. Wonder out loud where everyone went. "
    "Keep it to one short, comical sentence.",
    "[idle] The chat has been quiet for a while. Comment on how awkward the silence is. "
    "Keep it to one short, comical sentence.",
    "[idle] The chat has been quiet for a while. Hum a little tune, written out as text. "
    "Keep it to one short, comical sentence.",
    "[idle] The chat has been quiet for a while. Make a random observation about being "
    "a 3D stick figure. Keep it to one short, comical sentence.",
]


class ReactionGenerator:
    """
    Generates an Utterance from chat lines.

    Keeps a rolling history of recent chat lines so a reaction can lean on
    what was said a moment ago, not just the latest batch.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 1.1,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        history_size: int = 20,
        tts_model: str = "tts-1",
        tts_voice: str = "fable",
        tts_speed: float = 1.0,
        request_timeout_s: float = 30.0,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.system_prompt = system_prompt
        self.history_size = max(0, int(history_size))
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.tts_speed = tts_speed
        self.request_timeout_s = request_timeout_s
        self._history: Deque[str] = deque(maxlen=self.history_size or None)
        self._client = None

    @property
    def history(self) -> List[str]:
        return list(self._history)

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def build_prompt(self, lines: List[str], earlier: Optional[List[str]] = None) -> str:
        """Build the user prompt for a batch of chat lines (empty = idle)."""
        if not lines:
            return random.choice(IDLE_PROMPTS)

        parts = [PERSONA, ""]
        if earlier:
            parts.append("Earlier in the chat (for background only):")
            parts.extend(f"- {line}" for line in earlier)
            parts.append("")
        parts.append("Here are the latest messages from the chat:")
        parts.extend(f"- {line}" for line in lines)
        parts.append("")
        parts.append(
            "React to these messages. Pick one or two specific things to comment on, "
            "or give a general vibe check. Keep your response SHORT (under 2 sentences). "
            "Be funny, slightly confused, or overly enthusiastic. Do not use emojis, just text."
        )
        return "\n".join(parts)

    async def generate(self, lines: List[str]) -> Utterance:
        """Generate a reaction for the given chat lines."""
        earlier = self.history if self.history_size else []
        if lines and self.history_size:
            self._history.extend(lines)
        prompt = self.build_prompt(lines, earlier=earlier)

        text = (await self._complete_text(prompt)).strip()
        if not text:
            text = CHAT_FALLBACK_TEXT if lines else IDLE_FALLBACK_TEXT

        wav_bytes = await self._synthesize_wav(text)
        return Utterance(text=text, audio=wav_bytes or None)

    async def _complete_text(self, prompt: str) -> str:
        def _call() -> str:
            client = self._get_client()
            resp = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                timeout=self.request_timeout_s,
            )
            if not resp.choices:
                return ""
            return resp.choices[0].message.content or ""

        loop = asyncio.get_event_loop()
        t0 = time.time()
        text = await loop.run_in_executor(None, _call)
        logger.info("Reaction text in %.2fs: %r", time.time() - t0, text[:80])
        return text

    async def _synthesize_wav(self, text: str) -> bytes:
        def _call() -> bytes:
            client = self._get_client()
            resp = client.audio.speech.create(
                model=self.tts_model,
                voice=self.tts_voice,
                input=text,
                response_format="wav",
                speed=self.tts_speed,
                timeout=self.request_timeout_s,
            )
            return resp.read()

        loop = asyncio.get_event_loop()
        t0 = time.time()
        wav_bytes = await loop.run_in_executor(None, _call)
        logger.info("Reaction TTS: %d bytes in %.2fs", len(wav_bytes or b""), time.time() - t0)
        return wav_bytes


def create_generator_from_config(config: dict) -> ReactionGenerator:
    gen_cfg = config.get("generation", {}) or {}
    tts_cfg = config.get("tts", {}) or {}

    key_env = gen_cfg.get("api_key_env", "OPENAI_API_KEY")
    api_key = os.getenv(key_env)
    if not api_key:
        raise RuntimeError(f"{key_env} is not set (required for reaction generation)")

    return ReactionGenerator(
        api_key=api_key,
        model=gen_cfg.get("model", "gpt-4o-mini"),
        temperature=float(gen_cfg.get("temperature", 1.1)),
        system_prompt=gen_cfg.get("system_prompt", DEFAULT_SYSTEM_PROMPT),
        history_size=int(gen_cfg.get("history_size", 20)),
        tts_model=tts_cfg.get("model", "tts-1"),
        tts_voice=tts_cfg.get("voice", "fable"),
        tts_speed=float(tts_cfg.get("speed", 1.0)),
        request_timeout_s=float(tts_cfg.get("timeout", 30.0)),
    )
