"""
Realtime session orchestrator.

Owns the lifecycle of one conversation with explicit, monotonic states:

    idle → negotiating → active → ended
             └──(failure)──→ idle

- connect(): token → microphone → offer/answer → channel open → greeting
- Inbound events go through one queue and one dispatch task, so transcript
  mutation never interleaves with caller operations
- disconnect(): drain, tear down, infer milestones, build cards, finalize
- ended is terminal; reconnecting needs a new orchestrator
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter
from milestones import build_cards, detect_milestones, summarize
from .capture import MicrophoneSource
from .config import RealtimeConfig, resolve_voice
from .errors import (
    AlreadyNegotiating,
    ChannelClosedUnexpectedly,
    NegotiationAborted,
    NegotiationFailed,
    RealtimeSessionError,
    SessionClosed,
    classify_negotiation_error,
)
from .gateway import TokenGateway, validate_secret
from .models import Session
from .protocol import (
    AI_TRANSCRIPT_DELTA,
    ERROR,
    RESPONSE_DONE,
    USER_TRANSCRIPT_COMPLETED,
    decode_event,
    encode_event,
    greeting_event,
    voice_change_event,
)
from .transcript import TranscriptAccumulator, utc_now
from .transport import TransportHandlers, WebRTCTransport


logger = get_logger(LogComponent.ORCHESTRATOR)
emitter = EventEmitter(ObsComponent.VOICE_SESSION)

# Capabilities a subscriber may implement (any subset)
LISTENER_CAPABILITIES = (
    "on_transcript_entry",
    "on_audio_frame",
    "on_session_error",
    "on_session_ended",
)

_CHANNEL_CLOSED = object()


class OrchestratorState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    ENDED = "ended"


class RealtimeOrchestrator:
    """One orchestrator per conversation."""

    def __init__(
        self,
        config: RealtimeConfig,
        *,
        gateway: Optional[TokenGateway] = None,
        transport: Optional[WebRTCTransport] = None,
        microphone: Optional[MicrophoneSource] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self._gateway = gateway or TokenGateway(
            config.token_service_url,
            timeout=config.negotiation_timeout,
        )
        self._transport = transport or WebRTCTransport(
            config.provider_base_url,
            stun_server_url=config.stun_server_url,
            timeout=config.negotiation_timeout,
        )
        self._microphone = microphone or MicrophoneSource(
            config.microphone_device,
            config.microphone_format,
        )
        self._clock = clock

        self._state = OrchestratorState.IDLE
        self._session: Optional[Session] = None
        self._accumulator: Optional[TranscriptAccumulator] = None
        self._model = config.model
        self._voice = config.voice

        self._inbound: asyncio.Queue = asyncio.Queue()
        self._channel_ready: Optional[asyncio.Future] = None
        self._negotiation: Optional[asyncio.Future] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._aborted = False
        self._closing = False
        self._end_error: Optional[RealtimeSessionError] = None

        self._listeners: List[Any] = []
        self.logger = logger

    # --- Introspection ---

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def voice(self) -> str:
        return self._voice

    @property
    def end_error(self) -> Optional[RealtimeSessionError]:
        """Set when the session ended because the channel dropped."""
        return self._end_error

    def is_connected(self) -> bool:
        return self._state is OrchestratorState.ACTIVE

    # --- Subscriptions ---

    def subscribe(self, listener: Any) -> Callable[[], None]:
        """
        Register a listener implementing any of LISTENER_CAPABILITIES.

        Returns a callable that removes the listener again.
        """
        if not any(callable(getattr(listener, name, None)) for name in LISTENER_CAPABILITIES):
            raise TypeError(f"listener implements none of {', '.join(LISTENER_CAPABILITIES)}")
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, capability: str, *args: Any) -> None:
        for listener in list(self._listeners):
            handler = getattr(listener, capability, None)
            if not callable(handler):
                continue
            try:
                handler(*args)
            except Exception:
                self.logger.exception("Listener failed", capability=capability)

    # --- State ---

    def _transition(self, new_state: OrchestratorState) -> OrchestratorState:
        old_state = self._state
        self._state = new_state
        session_id = self._session.session_id if self._session else ""
        self.logger.info("Session state changed", from_state=old_state.value, to_state=new_state.value)
        emitter.state_changed(session_id, old_state.value, new_state.value)
        return old_state

    # --- connect ---

    async def connect(self, secret: str, voice_id: Optional[str], instructions: str) -> Session:
        """
        Negotiate a realtime session and return it once the event channel is open.

        Raises:
            AlreadyNegotiating: a connect is already in flight
            SessionClosed: the orchestrator is active or has ended
            InvalidCredential: malformed secret (no network call made)
            TokenRequestFailed, MicrophoneDenied, NegotiationTimeout,
            NegotiationFailed: negotiation failed; state is back to idle
            NegotiationAborted: disconnect() was called meanwhile
        """
        if self._state is OrchestratorState.NEGOTIATING:
            raise AlreadyNegotiating("a connect attempt is already in flight")
        if self._state is not OrchestratorState.IDLE:
            raise SessionClosed(f"orchestrator is {self._state.value}; create a new one to reconnect")

        validate_secret(secret)
        voice = resolve_voice(voice_id)

        self._voice = voice
        self._aborted = False
        self._closing = False
        self._session = Session.start(self._clock())
        self.logger = logger.with_session(self._session.session_id)
        self._channel_ready = asyncio.get_running_loop().create_future()
        self._transition(OrchestratorState.NEGOTIATING)

        self._negotiation = asyncio.ensure_future(self._negotiate(secret, voice, instructions))
        try:
            await self._negotiation
        except asyncio.CancelledError:
            if self._aborted or not await self._rollback():
                raise NegotiationAborted() from None
            raise
        except RealtimeSessionError as e:
            if self._aborted:
                raise NegotiationAborted() from e
            self.logger.warning("Negotiation failed", category=e.category, error=str(e))
            if not await self._rollback():
                raise NegotiationAborted() from e
            raise
        finally:
            self._negotiation = None

        return self._session

    async def _bounded(self, awaitable: Any, step: str) -> Any:
        timeout = self.config.negotiation_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except RealtimeSessionError:
            raise
        except Exception as e:
            raise classify_negotiation_error(e, step, timeout) from e

    async def _negotiate(self, secret: str, voice: str, instructions: str) -> None:
        start_ts = time.time()
        session_id = self._session.session_id

        token = await self._bounded(
            self._gateway.request_token(secret, self._model, voice, instructions, session_id=session_id),
            "token request",
        )

        # User-interactive permission prompt: no time bound
        track = await self._microphone.acquire()

        handlers = TransportHandlers(
            on_open=self._on_channel_open,
            on_message=self._on_channel_message,
            on_close=self._on_channel_closed,
            on_audio_frame=self._on_audio_frame,
        )
        await self._bounded(
            self._transport.open(token.client_secret, token.provider_model, track, handlers),
            "session description exchange",
        )
        await self._bounded(self._channel_ready, "event channel open")

        self._activate(token.provider_model, voice, latency_ms=int((time.time() - start_ts) * 1000))

    def _activate(self, model: str, voice: str, latency_ms: int) -> None:
        self._model = model
        self._accumulator = TranscriptAccumulator(self._clock)
        self._session.started_at = self._clock()
        self._transition(OrchestratorState.ACTIVE)
        self.logger.info("Realtime session active", model=model, voice=voice, latency_ms=latency_ms)
        emitter.session_connected(self._session.session_id, model=model, voice=voice, latency_ms=latency_ms)

        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        self._send(greeting_event(voice))

    async def _rollback(self) -> bool:
        """
        Undo a failed negotiation: release everything and return to idle.

        State stays negotiating during teardown, so a concurrent connect() is
        still refused. Returns False if disconnect() ended the session
        meanwhile; ended is terminal and is left alone.
        """
        self._closing = True
        await self._teardown()
        if self._aborted:
            return False
        self._transition(OrchestratorState.IDLE)
        self._session = None
        self._accumulator = None
        self._channel_ready = None
        self._inbound = asyncio.Queue()
        self._closing = False
        self.logger = logger
        return True

    # --- Transport callbacks (enqueue only) ---

    def _on_channel_open(self) -> None:
        self.logger.info("Event channel open")
        if self._channel_ready is not None and not self._channel_ready.done():
            self._channel_ready.set_result(None)

    def _on_channel_message(self, raw: Any) -> None:
        if not self._closing:
            self._inbound.put_nowait(raw)

    def _on_channel_closed(self) -> None:
        if self._closing or self._state is OrchestratorState.ENDED:
            return
        if self._state is OrchestratorState.NEGOTIATING:
            if self._channel_ready is not None and not self._channel_ready.done():
                self._channel_ready.set_exception(NegotiationFailed("event channel closed during negotiation"))
            return
        self._inbound.put_nowait(_CHANNEL_CLOSED)

    def _on_audio_frame(self, frame: Any) -> None:
        self._notify("on_audio_frame", frame)

    # --- Dispatch ---

    async def _dispatch_loop(self) -> None:
        while True:
            item = await self._inbound.get()
            if item is _CHANNEL_CLOSED:
                await self._end_unexpectedly()
                return
            self.handle_event(item)

    def handle_event(self, raw: Any) -> None:
        """
        Apply one inbound protocol event to the live transcript.

        Runs synchronously inside the dispatch task; never raises.
        """
        if self._accumulator is None:
            return
        try:
            event = decode_event(raw)
        except ValueError as e:
            self.logger.debug("Undecodable realtime event ignored", error=str(e))
            return

        session_id = self._session.session_id

        if event.kind == USER_TRANSCRIPT_COMPLETED:
            text = event.transcript.strip()
            if not text:
                return
            entry = self._accumulator.add_user_turn(text)
            self.logger.debug_pii("User turn transcribed", text=text)
            emitter.transcript_turn(session_id, "user", entry.entry_id, entry.content)
            self._notify("on_transcript_entry", entry)

        elif event.kind == AI_TRANSCRIPT_DELTA:
            if not event.delta:
                return
            entry = self._accumulator.append_ai_delta(event.delta)
            self._notify("on_transcript_entry", entry)

        elif event.kind == RESPONSE_DONE:
            entry = self._accumulator.close_ai_turn()
            self.logger.debug("Response completed")
            if entry is not None:
                emitter.transcript_turn(session_id, "ai", entry.entry_id, entry.content)

        elif event.kind == ERROR:
            self.logger.warning("Realtime provider error", error=event.error)
            emitter.realtime_error(session_id, event.error)

        else:
            self.logger.debug("Unhandled realtime event ignored", kind=event.kind)
            emitter.event_ignored(session_id, event.kind)

    # --- Outbound control ---

    def _send(self, envelope: Dict[str, Any]) -> bool:
        try:
            sent = self._transport.send(encode_event(envelope))
        except Exception as e:
            self.logger.warning("Control event not sent", error=str(e), error_type=type(e).__name__)
            return False
        if not sent:
            self.logger.warning("Control event not sent: channel not open", event_type=envelope.get("type"))
        return sent

    def change_voice(self, voice_id: str) -> bool:
        """Ask the AI to continue with another voice. No-op (False) unless active."""
        if self._state is not OrchestratorState.ACTIVE:
            self.logger.warning("Cannot change voice - not connected", state=self._state.value, voice=voice_id)
            return False
        voice = resolve_voice(voice_id)
        self.logger.info("Changing voice", voice=voice)
        self._voice = voice
        return self._send(voice_change_event(voice))

    # --- disconnect ---

    async def disconnect(self) -> Optional[Session]:
        """
        End the session and return it finalized.

        idle → None; ended → the same finalized Session. Never raises.
        """
        if self._state is OrchestratorState.IDLE:
            self.logger.info("Disconnect requested while idle; nothing to do")
            return None

        if self._state is OrchestratorState.ENDED:
            return self._session

        if self._state is OrchestratorState.NEGOTIATING:
            self.logger.info("Aborting in-flight negotiation")
            self._aborted = True
            self._closing = True
            task = self._negotiation
            if task is not None and not task.done():
                task.cancel()
                await asyncio.wait({task})
            session = self._finalize("aborted")
            await self._teardown()
            self._notify("on_session_ended", session)
            return session

        self._closing = True
        self._stop_dispatcher()
        session = self._finalize("user_disconnect")
        await self._teardown()
        self._notify("on_session_ended", session)
        return session

    async def _end_unexpectedly(self) -> None:
        error = ChannelClosedUnexpectedly("event channel closed while the session was active")
        self.logger.warning("Channel closed unexpectedly; finalizing session", category=error.category)
        self._end_error = error
        self._closing = True
        self._drain_inbound()
        session = self._finalize("channel_closed")
        await self._teardown()
        self._notify("on_session_error", error)
        self._notify("on_session_ended", session)

    def _stop_dispatcher(self) -> None:
        task = self._dispatcher
        self._dispatcher = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        # Events that arrived before the disconnect still belong to the transcript.
        self._drain_inbound()

    def _drain_inbound(self) -> None:
        while True:
            try:
                item = self._inbound.get_nowait()
            except asyncio.QueueEmpty:
                return
            if item is not _CHANNEL_CLOSED:
                self.handle_event(item)

    def _finalize(self, reason: str) -> Session:
        session = self._session
        transcript = self._accumulator.snapshot() if self._accumulator is not None else ()
        milestones = detect_milestones(transcript)
        cards = build_cards(session.session_id, milestones, clock=self._clock)
        summary = summarize(milestones)

        session.finalize(
            ended_at=self._clock(),
            reason=reason,
            transcript=transcript,
            milestones=tuple(milestones),
            progress_cards=tuple(cards),
            summary=summary,
        )
        self._transition(OrchestratorState.ENDED)

        self.logger.info(
            "Session finalized",
            reason=reason,
            duration_ms=session.duration_ms,
            transcript_entries=len(transcript),
            milestones=len(milestones),
        )
        emitter.milestones_detected(session.session_id, [m.category for m in milestones], summary)
        emitter.session_ended(
            session.session_id,
            reason=reason,
            duration_ms=session.duration_ms or 0,
            transcript_entries=len(transcript),
            milestones=len(milestones),
        )
        return session

    async def _teardown(self) -> None:
        """Release channel and capture. Failures are logged, never raised."""
        try:
            await self._transport.close()
        except Exception as e:
            self.logger.warning("Transport teardown failed", error=str(e), error_type=type(e).__name__)
        try:
            self._microphone.release()
        except Exception as e:
            self.logger.warning("Microphone release failed", error=str(e), error_type=type(e).__name__)
