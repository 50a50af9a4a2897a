"""
Structured JSON event emission (shared).

Used by the Voice Session orchestrator, the milestone engine and the token
service. Every event carries the same envelope: ts, session_id, component,
event_type, severity, correlation_id, pii.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from logging_setup import pii_logging_enabled, redact
from .event_store import event_store


class Component(str, Enum):
    """Emitting components."""

    VOICE_SESSION = "voice_session"
    MILESTONES = "milestones"
    TOKEN_SERVICE = "token_service"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


class EventEmitter:
    """Emits structured JSON events and records them in the event store."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        """
        Emit one event.

        Args:
            event_type: Stable event type string (e.g. "session.state_changed")
            session_id: Opaque session identifier
            severity: Event severity level
            correlation_id: Optional correlation ID (defaults to session_id)
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Event-specific fields
        """
        pii = dict(pii or DEFAULT_PII)
        if pii.get("contains_pii") and not pii_logging_enabled():
            for name in pii.get("fields", []):
                if name in kwargs:
                    kwargs[name] = redact(kwargs[name])
            pii["handling"] = "redacted"

        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
            "pii": pii,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        event_store.store(event)

    def state_changed(self, session_id: str, from_state: str, to_state: str) -> None:
        """Emit session.state_changed."""
        self.emit(
            "session.state_changed",
            session_id,
            from_state=from_state,
            to_state=to_state,
        )

    def session_connected(
        self,
        session_id: str,
        model: str,
        voice: str,
        latency_ms: Optional[int] = None,
    ) -> None:
        """Emit session.connected once the event channel is open."""
        self.emit(
            "session.connected",
            session_id,
            realtime={"model": model, "voice": voice},
            latency_ms=latency_ms,
        )

    def session_ended(
        self,
        session_id: str,
        reason: str,
        duration_ms: int,
        transcript_entries: int,
        milestones: int,
    ) -> None:
        """Emit session.ended with finalization counts."""
        self.emit(
            "session.ended",
            session_id,
            severity=Severity.WARN if reason == "channel_closed" else Severity.INFO,
            reason=reason,
            duration_ms=duration_ms,
            transcript_entries=transcript_entries,
            milestones=milestones,
        )

    def transcript_turn(
        self,
        session_id: str,
        speaker: str,
        entry_id: str,
        text: str,
    ) -> None:
        """Emit transcript.user_turn / transcript.ai_turn_closed. text is masked unless LOG_PII is on."""
        event_type = "transcript.user_turn" if speaker == "user" else "transcript.ai_turn_closed"
        self.emit(
            event_type,
            session_id,
            correlation_id=entry_id,
            pii={"contains_pii": True, "fields": ["text"], "handling": "none"},
            speaker=speaker,
            text=text,
            text_length=len(text),
        )

    def realtime_error(self, session_id: str, error: Any) -> None:
        """Emit realtime.error for an inbound provider error envelope."""
        self.emit(
            "realtime.error",
            session_id,
            severity=Severity.WARN,
            error=error,
        )

    def event_ignored(self, session_id: str, kind: Optional[str]) -> None:
        """Emit realtime.event_ignored for kinds outside the handled set."""
        self.emit(
            "realtime.event_ignored",
            session_id,
            severity=Severity.DEBUG,
            kind=kind,
        )

    def milestones_detected(
        self,
        session_id: str,
        categories: list[str],
        summary: str,
    ) -> None:
        """Emit milestones.detected after session finalization."""
        self.emit(
            "milestones.detected",
            session_id,
            count=len(categories),
            categories=categories,
            summary=summary,
        )

    def token_requested(self, session_id: str, model: str, voice: str) -> None:
        """Emit token.requested before asking the token service."""
        self.emit(
            "token.requested",
            session_id,
            realtime={"model": model, "voice": voice},
        )

    def token_issued(
        self,
        session_id: str,
        model: str,
        latency_ms: Optional[int] = None,
    ) -> None:
        """Emit token.issued when an ephemeral token has been minted."""
        self.emit(
            "token.issued",
            session_id,
            realtime={"model": model},
            latency_ms=latency_ms,
        )

    def token_rejected(self, session_id: str, status: int) -> None:
        """Emit token.rejected when the provider refuses to mint a session."""
        self.emit(
            "token.rejected",
            session_id,
            severity=Severity.WARN,
            status=status,
        )
