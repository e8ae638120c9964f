"""
Reaction trigger — decides when the stick figure speaks.

Ticks on a fixed period. On each tick, if no cycle is in flight (IDLE) and
either chat is waiting or the character has been quiet for longer than
idle_timeout_s, it drains the whole pending batch and starts one reaction
cycle in the background:

    IDLE -> GENERATING -> SPEAKING -> IDLE     (audio came back)
    IDLE -> GENERATING -> IDLE                 (failure or no audio, batch dropped)

SPEAKING -> IDLE only happens through the playback controller's completion
callback, never on a tick. An empty drained batch means "idle chatter".

A dropped cycle does not count as a reaction, so once the idle timeout has
passed a generation outage would retry on every tick. failure_cooldown_s
holds the trigger off for a while after each drop; it is 0 (off) by default.

Config (in config.yaml):
    reaction:
      tick_interval_s: 1.0   # how often to check
      idle_timeout_s: 15.0   # speak unprompted after this much silence
      failure_cooldown_s: 0.0  # after a dropped cycle, wait this long before the next one
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from stickbot.core.context import IncomingMessage, ReactionState, ReactorContext, Utterance
from stickbot.core.playback import PlaybackController

logger = logging.getLogger(__name__)

GenerateFn = Callable[[List[str]], Awaitable[Optional[Utterance]]]


class ReactionTrigger:
    """
    Periodic decision loop over ReactorContext.

    Usage::

        trigger = ReactionTrigger(
            context,
            generate=generator.generate,
            playback=playback_controller,
            config=config.get("reaction", {}),
        )
        task = asyncio.create_task(trigger.run())
        ...
        trigger.stop()
    """

    def __init__(
        self,
        context: ReactorContext,
        generate: GenerateFn,
        playback: PlaybackController,
        config: dict | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        cfg = config or {}
        self.tick_interval_s = float(cfg.get("tick_interval_s", 1.0))
        self.idle_timeout_s = float(cfg.get("idle_timeout_s", 15.0))
        self.failure_cooldown_s = float(cfg.get("failure_cooldown_s", 0.0))
        self.context = context
        self._generate = generate
        self._playback = playback
        self._clock = clock
        self._cycle_task: Optional[asyncio.Task] = None
        self._stopping = False
        self.cycles_started = 0
        self.cycles_dropped = 0
        self.consecutive_drops = 0
        self._cooldown_until: Optional[float] = None

    @property
    def state(self) -> ReactionState:
        return self.context.state

    @property
    def cycle_task(self) -> Optional[asyncio.Task]:
        return self._cycle_task

    def should_react(self) -> bool:
        """True if an IDLE trigger should start a cycle right now."""
        ctx = self.context
        now = self._clock()
        if self._cooldown_until is not None and now < self._cooldown_until:
            return False
        has_pending = bool(ctx.pending)
        idle_elapsed = (now - ctx.last_reaction_at) > self.idle_timeout_s
        return has_pending or idle_elapsed

    def tick(self) -> Optional[asyncio.Task]:
        """Evaluate once. Returns the started cycle task, or None."""
        ctx = self.context
        if ctx.state != ReactionState.IDLE:
            return None
        if not self.should_react():
            return None

        ctx.state = ReactionState.GENERATING
        batch = ctx.pending.drain_all()
        self.cycles_started += 1
        if batch:
            logger.info("Reaction cycle #%d: %d chat message(s)", self.cycles_started, len(batch))
        else:
            logger.info("Reaction cycle #%d: idle chatter", self.cycles_started)

        self._cycle_task = asyncio.create_task(self._run_cycle(batch))
        return self._cycle_task

    async def _run_cycle(self, batch: List[IncomingMessage]) -> None:
        ctx = self.context
        lines = [m.as_context_line() for m in batch]

        try:
            utterance = await self._generate(lines)
        except asyncio.CancelledError:
            ctx.state = ReactionState.IDLE
            raise
        except Exception:
            logger.exception("Reaction generation failed; dropping %d message(s)", len(batch))
            self._drop_cycle()
            return

        if utterance is None or not utterance.audio:
            logger.warning(
                "Reaction generated no audio (text=%r); dropping cycle",
                utterance.text[:80] if utterance else None,
            )
            self._drop_cycle()
            return

        ctx.state = ReactionState.SPEAKING
        self.consecutive_drops = 0
        self._cooldown_until = None
        try:
            self._playback.play(utterance, on_complete=self._on_playback_complete)
        except Exception:
            logger.exception("Could not start playback")
            self._drop_cycle()

    def _drop_cycle(self) -> None:
        self.cycles_dropped += 1
        self.consecutive_drops += 1
        if self.failure_cooldown_s > 0:
            self._cooldown_until = self._clock() + self.failure_cooldown_s
        if self.consecutive_drops in (3, 10) or self.consecutive_drops % 50 == 0:
            logger.warning(
                "%d reaction cycles dropped in a row (cooldown=%.1fs)",
                self.consecutive_drops,
                self.failure_cooldown_s,
            )
        self.context.state = ReactionState.IDLE

    def _on_playback_complete(self) -> None:
        if self.context.state != ReactionState.SPEAKING:
            logger.warning("Playback completed while state=%s", self.context.state.name)
        self.context.state = ReactionState.IDLE

    async def run(self) -> None:
        """Tick until stopped."""
        logger.info(
            "ReactionTrigger started (tick=%.1fs, idle_timeout=%.1fs)",
            self.tick_interval_s,
            self.idle_timeout_s,
        )
        try:
            while not self._stopping:
                self.tick()
                await asyncio.sleep(self.tick_interval_s)
        except asyncio.CancelledError:
            logger.info("ReactionTrigger cancelled")
            raise

        logger.info("ReactionTrigger stopped")

    def stop(self) -> None:
        """Signal the trigger to stop ticking. An in-flight cycle still completes."""
        self._stopping = True
