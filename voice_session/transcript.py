"""
Transcript accumulator.

Append-only log of speech turns in arrival order. User turns arrive as
discrete finalized transcripts; AI turns arrive as a stream of fragments that
grow the "current utterance" until the response completes.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .models import TranscriptEntry, new_id


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TranscriptAccumulator:
    """Owned and mutated by the orchestrator only; readers get snapshot()."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._entries: List[TranscriptEntry] = []
        self._ai_open = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def ai_turn_open(self) -> bool:
        return self._ai_open

    @property
    def current(self) -> Optional[TranscriptEntry]:
        return self._entries[-1] if self._entries else None

    def add_user_turn(self, text: str) -> TranscriptEntry:
        """Append a finalized user turn; closes any open AI turn."""
        self._ai_open = False
        entry = TranscriptEntry(
            entry_id=new_id(),
            timestamp=self._clock(),
            speaker="user",
            content=text,
        )
        self._entries.append(entry)
        return entry

    def append_ai_delta(self, delta: str) -> TranscriptEntry:
        """
        Grow the current AI utterance by one fragment.

        Starts a new AI entry unless the last entry is an open AI entry.
        The entry keeps the timestamp of its first fragment.
        """
        if self._ai_open and self._entries and self._entries[-1].speaker == "ai":
            entry = replace(self._entries[-1], content=self._entries[-1].content + delta)
            self._entries[-1] = entry
            return entry

        entry = TranscriptEntry(
            entry_id=new_id(),
            timestamp=self._clock(),
            speaker="ai",
            content=delta,
        )
        self._entries.append(entry)
        self._ai_open = True
        return entry

    def close_ai_turn(self) -> Optional[TranscriptEntry]:
        """Mark the current AI entry complete. Returns it, or None if none was open."""
        if not self._ai_open:
            return None
        self._ai_open = False
        return self._entries[-1]

    def snapshot(self) -> tuple[TranscriptEntry, ...]:
        """Immutable view for consumers; later appends do not show up in it."""
        return tuple(self._entries)
