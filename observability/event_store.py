"""
Bounded in-memory store of emitted events.

Lets tests and the console runner look back at what a session did (state
timeline, token round trips, milestone counts) without a log pipeline.

Transcript events carry user speech; fields named in an event's pii.fields
are masked on the way in unless the store is created with retain_pii=True.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple


_ENVELOPE_KEYS = frozenset({"ts", "session_id", "component", "event_type", "severity", "correlation_id", "pii"})

_NO_PII = {"contains_pii": False, "fields": [], "handling": "none"}


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoredEvent:
    ts: datetime
    session_id: str
    component: str
    event_type: str
    severity: str
    correlation_id: str
    pii: Dict[str, Any] = field(default_factory=lambda: dict(_NO_PII))
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts.isoformat(),
            "session_id": self.session_id,
            "component": self.component,
            "event_type": self.event_type,
            "severity": self.severity,
            "correlation_id": self.correlation_id,
            "pii": dict(self.pii),
            **self.payload,
        }


class EventStore:
    """FIFO of the most recent events (oldest dropped first)."""

    def __init__(self, max_events: int = 10000, retain_pii: bool = False):
        self._events: Deque[StoredEvent] = deque(maxlen=max_events)
        self.max_events = max_events
        self.retain_pii = retain_pii

    def __len__(self) -> int:
        return len(self._events)

    def store(self, event: Dict[str, Any]) -> StoredEvent:
        session_id = event.get("session_id") or ""
        pii = dict(event.get("pii") or _NO_PII)
        payload = {k: v for k, v in event.items() if k not in _ENVELOPE_KEYS}

        if pii.get("contains_pii") and not self.retain_pii:
            for name in pii.get("fields", []):
                if name in payload:
                    payload[name] = "[redacted]"
            pii["handling"] = "redacted"

        stored = StoredEvent(
            ts=_parse_ts(event.get("ts")),
            session_id=session_id,
            component=event.get("component", "unknown"),
            event_type=event.get("event_type", "unknown"),
            severity=event.get("severity", "info"),
            correlation_id=event.get("correlation_id") or session_id,
            pii=pii,
            payload=payload,
        )
        self._events.append(stored)
        return stored

    def query(
        self,
        session_id: Optional[str] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Matching events as dicts, oldest first. since/until are inclusive."""
        matches: List[Dict[str, Any]] = []
        for event in self._events:
            if session_id is not None and event.session_id != session_id:
                continue
            if event_type is not None and event.event_type != event_type:
                continue
            if component is not None and event.component != component:
                continue
            if since is not None and event.ts < since:
                continue
            if until is not None and event.ts > until:
                continue
            matches.append(event.to_dict())
            if limit and len(matches) >= limit:
                break
        return matches

    def timeline(self, session_id: str) -> List[Tuple[str, str]]:
        """(from_state, to_state) pairs of one session, in order."""
        return [
            (event.payload.get("from_state"), event.payload.get("to_state"))
            for event in self._events
            if event.session_id == session_id and event.event_type == "session.state_changed"
        ]

    def purge_session(self, session_id: str) -> int:
        """Forget everything recorded for one session. Returns how many events went."""
        kept = [e for e in self._events if e.session_id != session_id]
        removed = len(self._events) - len(kept)
        self._events = deque(kept, maxlen=self.max_events)
        return removed

    def clear(self) -> None:
        self._events.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_events": len(self._events),
            "max_events": self.max_events,
            "by_type": dict(Counter(e.event_type for e in self._events)),
            "oldest_event_ts": self._events[0].ts.isoformat() if self._events else None,
            "newest_event_ts": self._events[-1].ts.isoformat() if self._events else None,
        }


# Global event store instance
event_store = EventStore()
