"""
Chat reactor — wires the poller, trigger and playback into one loop.

Lifecycle:
- STARTUP: wait for the start gesture, open the audio device, resolve the
  live chat id
- RUNNING: FeedPoller and ReactionTrigger tasks run side by side on one
  event loop, sharing a single ReactorContext
- SHUTDOWN: stop both loops, cancel any in-flight cycle, release audio

If no live chat can be found the character still runs, it just never gets
any messages and only does idle chatter.
"""

import asyncio
import logging
import signal
import threading
import time
from typing import Any, Callable, Dict, Optional

from stickbot.core.audio_output import create_audio_output_from_config
from stickbot.core.context import ReactorContext
from stickbot.core.feed_poller import FeedPoller
from stickbot.core.pending_batch import create_pending_batch_from_config
from stickbot.core.playback import PlaybackController
from stickbot.core.reaction_generator import create_generator_from_config
from stickbot.core.reaction_trigger import ReactionTrigger
from stickbot.core.youtube_chat_client import YouTubeChatClient, create_chat_client_from_config
from stickbot.ui.subtitle_overlay import create_overlay_from_config

logger = logging.getLogger(__name__)


class ChatReactor:
    """
    Top-level orchestrator for the reacting stick figure.

    Collaborators can be injected (tests, tools); anything left as None is
    built from config.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        chat_client: Optional[YouTubeChatClient] = None,
        generator=None,
        audio_output=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._clock = clock
        self.context = ReactorContext(
            pending=create_pending_batch_from_config(config),
            last_reaction_at=clock(),
        )
        self.chat_client = chat_client if chat_client is not None else create_chat_client_from_config(config)
        self.generator = generator if generator is not None else create_generator_from_config(config)
        self.audio_output = audio_output if audio_output is not None else create_audio_output_from_config(config)

        self.playback = PlaybackController(self.context, self.audio_output, clock=clock)
        self.trigger = ReactionTrigger(
            self.context,
            generate=self.generator.generate,
            playback=self.playback,
            config=config.get("reaction", {}),
            clock=clock,
        )
        self.overlay = create_overlay_from_config(config)
        self.overlay.attach(self.playback)

        self.poller: Optional[FeedPoller] = None
        self.live_chat_id: Optional[str] = None
        self._poller_task: Optional[asyncio.Task] = None
        self._trigger_task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()
        self.running = True

    async def wait_for_start_gesture(self) -> bool:
        """
        Block until the user presses Enter (the audio device needs a gesture).

        Returns False if stop() arrived first. The prompt runs on a daemon
        thread because input() cannot be cancelled and would otherwise hold
        the default executor open at exit.
        """
        if not self.config.get("ui", {}).get("require_start_gesture", True):
            return True
        loop = asyncio.get_event_loop()
        pressed = loop.create_future()

        def _resolve() -> None:
            if not pressed.done():
                pressed.set_result(None)

        def _prompt() -> None:
            try:
                input("  ▶  Press Enter to start...")
            except EOFError:
                logger.info("stdin closed; starting without a gesture")
            try:
                loop.call_soon_threadsafe(_resolve)
            except RuntimeError:
                # Loop already closed.
                pass

        threading.Thread(target=_prompt, name="start-gesture", daemon=True).start()
        stopped = asyncio.ensure_future(self._stopped.wait())
        try:
            await asyncio.wait({pressed, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()
        return not self._stopped.is_set()

    async def resolve_live_chat_id(self) -> Optional[str]:
        yt_cfg = self.config.get("youtube", {}) or {}
        live_chat_id = yt_cfg.get("live_chat_id") or None
        if live_chat_id:
            return live_chat_id
        video_id = yt_cfg.get("video_id")
        if not video_id:
            logger.error("No youtube.video_id or youtube.live_chat_id configured")
            return None
        return await self.chat_client.get_live_chat_id(video_id)

    async def startup(self) -> None:
        if not await self.wait_for_start_gesture():
            logger.info("Stopped before start")
            return
        self.audio_output.open()

        # Quiet period starts once the figure is actually on stage.
        self.context.last_reaction_at = self._clock()

        self.live_chat_id = await self.resolve_live_chat_id()
        if self.live_chat_id:
            chat_id = self.live_chat_id
            self.poller = FeedPoller(
                self.context,
                fetch=lambda token: self.chat_client.fetch_messages(chat_id, token),
                config=self.config.get("poller", {}),
            )
            self._poller_task = asyncio.create_task(self.poller.run())
            logger.info("Polling live chat %s", chat_id)
        else:
            logger.error("Could not find live chat; running idle chatter only")

        self._trigger_task = asyncio.create_task(self.trigger.run())

    async def run(self) -> None:
        """Run until stop() or SIGINT."""
        loop = asyncio.get_event_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler not installed")

        try:
            await self.startup()
            await self._stopped.wait()
        except asyncio.CancelledError:
            logger.info("Shutting down (cancelled)...")
            self.running = False
        finally:
            await self.cleanup()

    def stop(self) -> None:
        self.running = False
        self._stopped.set()

    def _handle_sigint(self) -> None:
        if not self.running:
            logger.warning("Second SIGINT — forcing exit")
            raise KeyboardInterrupt
        logger.info("SIGINT received — shutting down gracefully...")
        self.stop()

    async def cleanup(self) -> None:
        logger.info("Cleaning up...")

        if self.poller is not None:
            self.poller.stop()
        self.trigger.stop()

        tasks = [
            self._poller_task,
            self._trigger_task,
            self.trigger.cycle_task,
            self.playback.playback_task,
        ]
        for task in tasks:
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.audio_output.aclose()
        logger.info("Cleanup complete")
