"""
Feed poller — keeps the pending batch topped up from the live chat.

Each poll fetches one page using the stored continuation token, appends the
messages to the pending batch in feed order, then sleeps for the
server-suggested interval (never less than min_interval_s). A failed fetch
appends nothing and retries after the conservative interval the client put
on the failed result (5s for an API error, 10s for a transport error), or
after fallback_interval_s when that is set. The loop reschedules
itself forever, empty page or not, until stopped.

Config (in config.yaml):
    poller:
      min_interval_s: 5.0         # floor on the server-suggested interval
      fallback_interval_s: null   # fixed retry delay; null uses the client's
      backoff_on_failure: false   # double the retry delay on repeated failures
      max_backoff_s: 60.0         # cap for the doubled delay
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Awaitable, Callable, Optional

from stickbot.core.context import IncomingMessage, ReactorContext
from stickbot.core.youtube_chat_client import EXCEPTION_INTERVAL_S, ChatFetchResult

logger = logging.getLogger(__name__)

FetchFn = Callable[[Optional[str]], Awaitable[ChatFetchResult]]


class FeedPoller:
    """
    Polls the chat feed and feeds ReactorContext.pending.

    Usage::

        poller = FeedPoller(
            context,
            fetch=lambda token: client.fetch_messages(chat_id, token),
            config=config.get("poller", {}),
        )
        task = asyncio.create_task(poller.run())
        ...
        poller.stop()
    """

    def __init__(
        self,
        context: ReactorContext,
        fetch: FetchFn,
        config: dict | None = None,
    ):
        cfg = config or {}
        self.min_interval_s = float(cfg.get("min_interval_s", 5.0))
        fallback = cfg.get("fallback_interval_s")
        self.fallback_interval_s: Optional[float] = float(fallback) if fallback is not None else None
        self.backoff_on_failure = bool(cfg.get("backoff_on_failure", False))
        self.max_backoff_s = float(cfg.get("max_backoff_s", 60.0))
        self.context = context
        self._fetch = fetch
        self._arrival_counter = itertools.count()
        self._consecutive_failures = 0
        self._stopping = False

    def _failure_delay(self, suggested_s: float) -> float:
        base = self.fallback_interval_s if self.fallback_interval_s is not None else suggested_s
        delay = max(float(base), self.min_interval_s)
        if self.backoff_on_failure and self._consecutive_failures > 1:
            delay = delay * (2 ** (self._consecutive_failures - 1))
            delay = min(delay, max(self.max_backoff_s, self.min_interval_s))
        return delay

    async def poll_once(self) -> float:
        """Fetch one page and return the delay (seconds) before the next poll."""
        ctx = self.context
        try:
            result = await self._fetch(ctx.next_token)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Chat fetch raised; treating as empty", exc_info=True)
            result = ChatFetchResult.failed(EXCEPTION_INTERVAL_S)

        if not result.ok:
            self._consecutive_failures += 1
            delay = self._failure_delay(result.polling_interval_s)
            logger.info(
                "Chat fetch failed (%d in a row); retrying in %.1fs",
                self._consecutive_failures,
                delay,
            )
            return delay

        self._consecutive_failures = 0
        ctx.next_token = result.next_token
        ctx.poll_interval_s = max(float(result.polling_interval_s), self.min_interval_s)

        if result.messages:
            incoming = [
                IncomingMessage(
                    author=m.author,
                    text=m.message,
                    arrival_order=next(self._arrival_counter),
                    published_at=m.published_at,
                    message_id=m.id,
                )
                for m in result.messages
            ]
            ctx.pending.append(incoming)
            logger.debug(
                "Polled %d message(s), %d pending",
                len(incoming),
                len(ctx.pending),
            )

        return ctx.poll_interval_s

    async def run(self) -> None:
        """Poll forever, rescheduling after every fetch."""
        logger.info(
            "FeedPoller started (min_interval=%.1fs, fallback=%s, backoff=%s)",
            self.min_interval_s,
            f"{self.fallback_interval_s:.1f}s" if self.fallback_interval_s is not None else "client",
            self.backoff_on_failure,
        )
        try:
            while not self._stopping:
                delay = await self.poll_once()
                await self._interruptible_sleep(delay)
        except asyncio.CancelledError:
            logger.info("FeedPoller cancelled")
            raise

        logger.info("FeedPoller stopped")

    async def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep in small increments so stop() takes effect quickly."""
        end = time.monotonic() + seconds
        while not self._stopping and time.monotonic() < end:
            remaining = end - time.monotonic()
            await asyncio.sleep(min(0.5, remaining))

    def stop(self) -> None:
        """Signal the poller to stop."""
        self._stopping = True
