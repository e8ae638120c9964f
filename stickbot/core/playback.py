"""
Playback controller — owns the "is speaking" and "current subtitle" signals.

play() flips the signals on, stamps the last reaction time and schedules
the audio on the output sink, then returns right away. When the sink
finishes (or fails), the signals are cleared, the timestamp is refreshed,
and the caller's completion callback fires, in that order. That callback is
the only thing that moves the reaction trigger from SPEAKING back to IDLE.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from stickbot.core.context import ReactorContext, Utterance

logger = logging.getLogger(__name__)

Listener = Callable[[bool, str], None]


class PlaybackController:
    """Plays utterances and publishes the speaking/subtitle signals."""

    def __init__(
        self,
        context: ReactorContext,
        audio_output,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.context = context
        self._audio_output = audio_output
        self._clock = clock
        self._is_speaking = False
        self._subtitle = ""
        self._listeners: List[Listener] = []
        self._playback_task: Optional[asyncio.Task] = None

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def current_subtitle(self) -> str:
        return self._subtitle

    @property
    def playback_task(self) -> Optional[asyncio.Task]:
        return self._playback_task

    def add_listener(self, listener: Listener) -> None:
        """Register a callback(is_speaking, subtitle) for signal changes."""
        self._listeners.append(listener)

    def _set_signals(self, speaking: bool, subtitle: str) -> None:
        self._is_speaking = speaking
        self._subtitle = subtitle
        for listener in list(self._listeners):
            try:
                listener(speaking, subtitle)
            except Exception:
                logger.debug("Playback listener failed", exc_info=True)

    def play(self, utterance: Utterance, on_complete: Callable[[], None]) -> asyncio.Task:
        """Start playing an utterance. Returns the playback task without awaiting it."""
        if not utterance.audio:
            raise ValueError("Utterance has no audio to play")

        self._set_signals(True, utterance.text)
        self.context.last_reaction_at = self._clock()
        logger.info("Speaking: %r", utterance.text[:80])

        self._playback_task = asyncio.create_task(self._play(utterance, on_complete))
        return self._playback_task

    async def _play(self, utterance: Utterance, on_complete: Callable[[], None]) -> None:
        try:
            await self._audio_output.play(utterance.audio)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Audio playback failed")
        finally:
            self._finish(on_complete)

    def _finish(self, on_complete: Callable[[], None]) -> None:
        self._set_signals(False, "")
        self.context.last_reaction_at = self._clock()
        logger.debug("Playback finished")
        try:
            on_complete()
        except Exception:
            logger.exception("Playback completion callback failed")
