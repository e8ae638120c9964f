"""
Shared value types and the explicit loop context.

All mutable loop state (continuation token, poll interval, pending batch,
reaction state, last reaction timestamp) lives on a single ReactorContext
that is handed to the poller, trigger and playback controller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from stickbot.core.pending_batch import PendingBatch


class ReactionState(Enum):
    """States of the reaction cycle."""
    IDLE = "idle"
    GENERATING = "generating"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class IncomingMessage:
    author: str
    text: str
    arrival_order: int
    published_at: str = ""
    message_id: str = ""

    def as_context_line(self) -> str:
        return f"{self.author}: {self.text}"


@dataclass(frozen=True)
class Utterance:
    text: str
    audio: Optional[bytes] = None


@dataclass
class ReactorContext:
    pending: PendingBatch = field(default_factory=PendingBatch)
    next_token: Optional[str] = None
    poll_interval_s: float = 5.0
    state: ReactionState = ReactionState.IDLE
    last_reaction_at: float = field(default_factory=time.monotonic)
