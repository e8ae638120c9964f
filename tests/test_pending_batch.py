"""Unit tests for PendingBatch — ordering, drain-all semantics, overflow policy."""

import pytest

from stickbot.core.context import IncomingMessage
from stickbot.core.pending_batch import PendingBatch, create_pending_batch_from_config


def _msgs(*texts, start=0):
    return [
        IncomingMessage(author=f"user{i}", text=t, arrival_order=start + i)
        for i, t in enumerate(texts)
    ]


class TestAppendAndDrain:

    def test_starts_empty(self):
        batch = PendingBatch()
        assert len(batch) == 0
        assert not batch
        assert batch.drain_all() == []

    def test_preserves_arrival_order(self):
        batch = PendingBatch()
        batch.append(_msgs("a", "b"))
        batch.append(_msgs("c", start=2))
        assert [m.text for m in batch.drain_all()] == ["a", "b", "c"]

    def test_drain_empties_batch(self):
        batch = PendingBatch()
        batch.append(_msgs("a", "b"))
        drained = batch.drain_all()
        assert len(drained) == 2
        assert len(batch) == 0
        assert batch.drain_all() == []

    def test_append_after_drain_lands_in_new_batch(self):
        batch = PendingBatch()
        batch.append(_msgs("a"))
        first = batch.drain_all()
        batch.append(_msgs("b", start=1))
        assert [m.text for m in first] == ["a"]
        assert [m.text for m in batch.drain_all()] == ["b"]

    def test_drained_list_is_independent(self):
        """Mutating a drained list must not touch the batch."""
        batch = PendingBatch()
        batch.append(_msgs("a"))
        drained = batch.drain_all()
        drained.clear()
        batch.append(_msgs("b", start=1))
        assert len(batch) == 1

    def test_no_message_drained_twice(self):
        batch = PendingBatch()
        seen = []
        for round_ in range(5):
            batch.append(_msgs(f"m{round_}a", f"m{round_}b", start=round_ * 2))
            seen.extend(m.arrival_order for m in batch.drain_all())
        assert seen == list(range(10))

    def test_append_returns_accepted_count(self):
        batch = PendingBatch()
        assert batch.append(_msgs("a", "b", "c")) == 3
        assert batch.append([]) == 0


class TestOverflow:

    def test_unbounded_by_default(self):
        batch = PendingBatch()
        batch.append(_msgs(*[str(i) for i in range(1000)]))
        assert len(batch) == 1000
        assert batch.dropped_count == 0

    def test_drop_oldest(self):
        batch = PendingBatch(max_messages=3, overflow="drop_oldest")
        accepted = batch.append(_msgs("a", "b", "c", "d", "e"))
        assert accepted == 5
        assert [m.text for m in batch.drain_all()] == ["c", "d", "e"]
        assert batch.dropped_count == 2

    def test_reject_newest(self):
        batch = PendingBatch(max_messages=3, overflow="reject_newest")
        accepted = batch.append(_msgs("a", "b", "c", "d", "e"))
        assert accepted == 3
        assert [m.text for m in batch.drain_all()] == ["a", "b", "c"]
        assert batch.dropped_count == 2

    def test_cap_frees_after_drain(self):
        batch = PendingBatch(max_messages=2, overflow="reject_newest")
        batch.append(_msgs("a", "b"))
        batch.drain_all()
        assert batch.append(_msgs("c", "d", start=2)) == 2

    def test_invalid_policy_raises(self):
        with pytest.raises(RuntimeError, match="Unsupported overflow policy"):
            PendingBatch(max_messages=3, overflow="drop_random")

    def test_non_positive_cap_raises(self):
        with pytest.raises(RuntimeError, match="max_messages"):
            PendingBatch(max_messages=0)


class TestConfig:

    def test_defaults(self):
        batch = create_pending_batch_from_config({})
        assert batch.max_messages is None
        assert batch.overflow == "drop_oldest"

    def test_from_config(self):
        batch = create_pending_batch_from_config(
            {"pending": {"max_messages": 50, "overflow": "reject_newest"}}
        )
        assert batch.max_messages == 50
        assert batch.overflow == "reject_newest"

    def test_null_section(self):
        batch = create_pending_batch_from_config({"pending": None})
        assert batch.max_messages is None
