"""
Session data model.

A Session is created when the user starts talking, only the orchestrator
mutates it, and it is finalized exactly once at disconnect.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal, Optional

Speaker = Literal["user", "ai"]
SeverityTier = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class TranscriptEntry:
    """One speech turn. Ordering is arrival order, not timestamp order."""

    entry_id: str
    timestamp: datetime
    speaker: Speaker
    content: str

    def __post_init__(self):
        if self.speaker not in ("user", "ai"):
            raise ValueError("speaker must be 'user' or 'ai'")


@dataclass(frozen=True)
class Milestone:
    """A progress signal detected in one user turn."""

    milestone_id: str
    category: str
    title: str
    description: str
    achieved_at: datetime
    severity: SeverityTier
    confidence: float = 0.0


@dataclass(frozen=True)
class ProgressCard:
    """Presentation record derived 1:1 from an accepted milestone."""

    card_id: str
    session_id: str
    title: str
    description: str
    milestone: Milestone
    created_at: datetime
    color: str
    icon: str


def new_id() -> str:
    """Opaque identifier (uuid4); encodes nothing about the user."""
    return str(uuid.uuid4())


@dataclass
class Session:
    """One realtime conversation."""

    session_id: str
    started_at: datetime

    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None

    transcript: tuple[TranscriptEntry, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    progress_cards: tuple[ProgressCard, ...] = ()
    summary: Optional[str] = None

    _finalized: bool = field(default=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.session_id:
            raise ValueError("session_id is required")

    @classmethod
    def start(cls, started_at: datetime) -> "Session":
        return cls(session_id=new_id(), started_at=started_at)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    @property
    def duration_ms(self) -> Optional[int]:
        duration = self.duration
        if duration is None:
            return None
        return int(duration.total_seconds() * 1000)

    def is_finalized(self) -> bool:
        return self._finalized

    def finalize(
        self,
        *,
        ended_at: datetime,
        reason: str,
        transcript: tuple[TranscriptEntry, ...],
        milestones: tuple[Milestone, ...],
        progress_cards: tuple[ProgressCard, ...],
        summary: str,
    ) -> None:
        """Stamp the end of the session. Allowed once."""
        if self._finalized:
            raise RuntimeError(f"session {self.session_id} is already finalized")
        self.ended_at = ended_at
        self.end_reason = reason
        self.transcript = tuple(transcript)
        self.milestones = tuple(milestones)
        self.progress_cards = tuple(progress_cards)
        self.summary = summary
        self._finalized = True
