"""
Transcript accumulator tests.
"""
from datetime import datetime, timedelta, timezone
from itertools import count

from voice_session.transcript import TranscriptAccumulator


def ticking_clock():
    start = datetime(2025, 3, 1, tzinfo=timezone.utc)
    ticks = count()
    return lambda: start + timedelta(seconds=next(ticks))


def test_user_turns_append_in_order():
    acc = TranscriptAccumulator(ticking_clock())
    acc.add_user_turn("hello")
    acc.add_user_turn("again")

    snap = acc.snapshot()
    assert [e.content for e in snap] == ["hello", "again"]
    assert all(e.speaker == "user" for e in snap)
    assert snap[0].entry_id != snap[1].entry_id


def test_ai_deltas_grow_one_entry():
    acc = TranscriptAccumulator(ticking_clock())
    first = acc.append_ai_delta("Hi")
    acc.append_ai_delta(" there")
    last = acc.append_ai_delta("!")

    assert len(acc) == 1
    assert last.content == "Hi there!"
    assert last.entry_id == first.entry_id
    # keeps the timestamp of the first fragment
    assert last.timestamp == first.timestamp


def test_close_ai_turn_starts_new_entry_next_time():
    acc = TranscriptAccumulator(ticking_clock())
    acc.append_ai_delta("One")
    closed = acc.close_ai_turn()
    acc.append_ai_delta("Two")

    assert closed.content == "One"
    assert [e.content for e in acc.snapshot()] == ["One", "Two"]


def test_close_without_open_turn():
    acc = TranscriptAccumulator()
    assert acc.close_ai_turn() is None


def test_user_turn_closes_ai_turn():
    acc = TranscriptAccumulator(ticking_clock())
    acc.append_ai_delta("How are")
    acc.add_user_turn("fine")
    acc.append_ai_delta("Good")

    assert [(e.speaker, e.content) for e in acc.snapshot()] == [
        ("ai", "How are"),
        ("user", "fine"),
        ("ai", "Good"),
    ]
    assert acc.ai_turn_open


def test_snapshot_is_isolated():
    acc = TranscriptAccumulator()
    acc.add_user_turn("one")
    snap = acc.snapshot()
    acc.add_user_turn("two")

    assert isinstance(snap, tuple)
    assert len(snap) == 1
