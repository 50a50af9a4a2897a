"""
Realtime session error taxonomy.

Maps negotiation and channel failures to stable categories so callers can
pick a remediation message without parsing exception text. Nothing here is
retried; retry policy belongs to the caller.
"""
from __future__ import annotations

import asyncio
from typing import Optional


class ErrorCategory:
    """Stable error categories."""

    # Caller input / misuse
    INVALID_CREDENTIAL = "credential.invalid"
    ALREADY_NEGOTIATING = "session.already_negotiating"
    SESSION_CLOSED = "session.closed"

    # Negotiation
    TOKEN_REQUEST_FAILED = "token.request_failed"
    MICROPHONE_DENIED = "microphone.denied"
    NEGOTIATION_TIMEOUT = "negotiation.timeout"
    NEGOTIATION_FAILED = "negotiation.failed"
    NEGOTIATION_ABORTED = "negotiation.aborted"

    # Active session
    CHANNEL_CLOSED = "channel.closed_unexpectedly"


class RealtimeSessionError(Exception):
    """Base class for every error surfaced by the Voice Session core."""

    category: str = ErrorCategory.NEGOTIATION_FAILED


class InvalidCredential(RealtimeSessionError):
    """The long-lived secret is malformed; no network call was made."""

    category = ErrorCategory.INVALID_CREDENTIAL


class TokenRequestFailed(RealtimeSessionError):
    """The token service answered with a non-2xx status."""

    category = ErrorCategory.TOKEN_REQUEST_FAILED

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"token request failed with status {status}: {redact_detail(body)}")


class MicrophoneDenied(RealtimeSessionError):
    """Local audio capture was refused or no capture device exists."""

    category = ErrorCategory.MICROPHONE_DENIED


class NegotiationTimeout(RealtimeSessionError):
    """A network step of the negotiation exceeded its time budget."""

    category = ErrorCategory.NEGOTIATION_TIMEOUT

    def __init__(self, step: str, timeout: float):
        self.step = step
        self.timeout = timeout
        super().__init__(f"{step} timed out after {timeout:g}s")


class NegotiationFailed(RealtimeSessionError):
    """Network or protocol failure during the session-description exchange."""

    category = ErrorCategory.NEGOTIATION_FAILED

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class NegotiationAborted(NegotiationFailed):
    """disconnect() was called while the negotiation was in flight."""

    category = ErrorCategory.NEGOTIATION_ABORTED

    def __init__(self):
        super().__init__("negotiation aborted by disconnect")


class ChannelClosedUnexpectedly(RealtimeSessionError):
    """The event channel or peer connection closed while the session was active."""

    category = ErrorCategory.CHANNEL_CLOSED


class AlreadyNegotiating(RealtimeSessionError):
    """A second connect() was issued while one is in flight."""

    category = ErrorCategory.ALREADY_NEGOTIATING


class SessionClosed(RealtimeSessionError):
    """connect() on an orchestrator that is active or has ended."""

    category = ErrorCategory.SESSION_CLOSED


def redact_detail(detail: str) -> str:
    """Drop details that may echo a secret back into logs."""
    lowered = detail.lower()
    if "sk-" in lowered or "secret" in lowered or "bearer" in lowered:
        return "[redacted: potential secret]"
    return detail


def classify_negotiation_error(error: BaseException, step: str, timeout: float) -> RealtimeSessionError:
    """
    Map an arbitrary failure raised during negotiation into the taxonomy.

    Errors already in the taxonomy are returned unchanged.
    """
    if isinstance(error, RealtimeSessionError):
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return NegotiationTimeout(step, timeout)

    detail = redact_detail(str(error)) or type(error).__name__
    return NegotiationFailed(f"{step} failed: {detail}")


def get_user_message(error: RealtimeSessionError) -> str:
    """
    User-facing remediation text per category.

    The UI layer shows these; they never contain upstream details.
    """
    messages = {
        ErrorCategory.INVALID_CREDENTIAL: 'Invalid API key format. OpenAI API keys should start with "sk-".',
        ErrorCategory.TOKEN_REQUEST_FAILED: "Could not start a session. Please check your OpenAI API key in Settings.",
        ErrorCategory.MICROPHONE_DENIED: "Microphone access denied. Please allow microphone permissions and try again.",
        ErrorCategory.NEGOTIATION_TIMEOUT: "Connecting took too long. Please check your internet connection and try again.",
        ErrorCategory.NEGOTIATION_FAILED: "Failed to connect to the voice service. Please try again.",
        ErrorCategory.NEGOTIATION_ABORTED: "The session was cancelled before it started.",
        ErrorCategory.CHANNEL_CLOSED: "The connection was lost. Your conversation so far has been saved.",
        ErrorCategory.ALREADY_NEGOTIATING: "Already connecting, please wait.",
        ErrorCategory.SESSION_CLOSED: "This session has ended. Start a new session to talk again.",
    }
    if isinstance(error, TokenRequestFailed) and error.status in (401, 403):
        return "Invalid API key. Please check your OpenAI API key in Settings."
    return messages.get(error.category, "Sorry, something went wrong.")
