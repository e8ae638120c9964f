"""
Pending batch — chat messages waiting for the next reaction.

The feed poller appends, the reaction trigger drains everything at once.
Both run on the same event loop, so append/drain are atomic with respect
to each other: anything appended after a drain lands in the fresh batch.

Config (in config.yaml):
    pending:
      max_messages: null      # no cap by default
      overflow: drop_oldest   # or reject_newest, only used with a cap
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Deque, Iterable, List, Optional

if TYPE_CHECKING:
    from stickbot.core.context import IncomingMessage

logger = logging.getLogger(__name__)

OVERFLOW_POLICIES = ("drop_oldest", "reject_newest")


class PendingBatch:
    """Ordered, drain-all queue of not-yet-reacted-to messages."""

    def __init__(self, max_messages: Optional[int] = None, overflow: str = "drop_oldest"):
        if overflow not in OVERFLOW_POLICIES:
            raise RuntimeError(
                f"Unsupported overflow policy={overflow!r} (supported: {', '.join(OVERFLOW_POLICIES)})"
            )
        if max_messages is not None and int(max_messages) <= 0:
            raise RuntimeError(f"max_messages must be positive, got {max_messages!r}")
        self.max_messages = int(max_messages) if max_messages is not None else None
        self.overflow = overflow
        self.dropped_count = 0
        self._items: Deque["IncomingMessage"] = deque()

    def append(self, messages: Iterable["IncomingMessage"]) -> int:
        """Append messages in order. Returns how many were accepted."""
        accepted = 0
        dropped = 0
        for msg in messages:
            if self.max_messages is not None and len(self._items) >= self.max_messages:
                if self.overflow == "reject_newest":
                    dropped += 1
                    continue
                self._items.popleft()
                dropped += 1
            self._items.append(msg)
            accepted += 1

        if dropped:
            self.dropped_count += dropped
            logger.warning(
                "Pending batch full (max=%s, policy=%s): dropped %d message(s)",
                self.max_messages,
                self.overflow,
                dropped,
            )
        return accepted

    def drain_all(self) -> List["IncomingMessage"]:
        """Return every pending message and leave the batch empty."""
        items, self._items = self._items, deque()
        return list(items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


def create_pending_batch_from_config(config: dict) -> PendingBatch:
    cfg = config.get("pending", {}) or {}
    return PendingBatch(
        max_messages=cfg.get("max_messages"),
        overflow=cfg.get("overflow", "drop_oldest"),
    )
