"""
Session history persistence.

A finalized Session is serialized to a plain dict (ISO-8601 timestamps) and
appended to a JSON-lines history file. SessionHistoryWriter implements the
on_session_ended listener capability, so it can be subscribed directly to an
orchestrator.
"""
from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Union

from logging_setup import get_logger, Component
from .models import Milestone, ProgressCard, Session, TranscriptEntry


logger = get_logger(Component.PERSISTENCE)


def _iso(value) -> Any:
    return value.isoformat() if value is not None else None


def _entry_to_dict(entry: TranscriptEntry) -> Dict[str, Any]:
    data = asdict(entry)
    data["timestamp"] = _iso(entry.timestamp)
    return data


def _milestone_to_dict(milestone: Milestone) -> Dict[str, Any]:
    data = asdict(milestone)
    data["achieved_at"] = _iso(milestone.achieved_at)
    return data


def _card_to_dict(card: ProgressCard) -> Dict[str, Any]:
    return {
        "card_id": card.card_id,
        "session_id": card.session_id,
        "title": card.title,
        "description": card.description,
        "milestone": _milestone_to_dict(card.milestone),
        "created_at": _iso(card.created_at),
        "color": card.color,
        "icon": card.icon,
    }


def session_to_dict(session: Session) -> Dict[str, Any]:
    """Serialize a session. Only finalized sessions are accepted."""
    if not session.is_finalized():
        raise ValueError(f"session {session.session_id} is not finalized")
    return {
        "session_id": session.session_id,
        "started_at": _iso(session.started_at),
        "ended_at": _iso(session.ended_at),
        "duration_ms": session.duration_ms,
        "end_reason": session.end_reason,
        "transcript": [_entry_to_dict(e) for e in session.transcript],
        "milestones": [_milestone_to_dict(m) for m in session.milestones],
        "progress_cards": [_card_to_dict(c) for c in session.progress_cards],
        "summary": session.summary,
    }


class SessionHistoryWriter:
    """Appends finalized sessions to a JSON-lines file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def append(self, session: Session) -> None:
        record = session_to_dict(session)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False))
            f.write("\n")
        logger.info(
            "Session saved to history",
            session_id=session.session_id,
            path=str(self.path),
            milestones=len(session.milestones),
        )

    def on_session_ended(self, session: Session) -> None:
        self.append(session)
