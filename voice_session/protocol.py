"""
Control-channel envelopes exchanged with the realtime provider.

Outbound envelopes are plain dicts serialized to JSON; inbound payloads are
decoded into RealtimeEvent. Unknown inbound kinds decode fine and are simply
not acted upon (forward compatibility with upstream additions).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


# Inbound kinds the orchestrator acts on
USER_TRANSCRIPT_COMPLETED = "conversation.item.input_audio_transcription.completed"
AI_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
RESPONSE_DONE = "response.done"
ERROR = "error"

HANDLED_KINDS = frozenset({USER_TRANSCRIPT_COMPLETED, AI_TRANSCRIPT_DELTA, RESPONSE_DONE, ERROR})

# Outbound kinds
RESPONSE_CREATE = "response.create"

GREETING_INSTRUCTIONS = "Say hello warmly and ask how you can help today."


@dataclass(frozen=True)
class RealtimeEvent:
    """One decoded inbound event."""

    kind: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def transcript(self) -> str:
        value = self.payload.get("transcript")
        return value if isinstance(value, str) else ""

    @property
    def delta(self) -> str:
        value = self.payload.get("delta")
        return value if isinstance(value, str) else ""

    @property
    def error(self) -> Any:
        return self.payload.get("error")

    def is_handled(self) -> bool:
        return self.kind in HANDLED_KINDS


def decode_event(raw: Union[str, bytes, Dict[str, Any]]) -> RealtimeEvent:
    """
    Decode one inbound message.

    Raises ValueError if the payload is not a JSON object.
    """
    if isinstance(raw, dict):
        data = raw
    else:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("realtime event must be a JSON object")

    kind = data.get("type")
    return RealtimeEvent(kind=kind if isinstance(kind, str) else None, payload=data)


def response_create(
    instructions: str,
    modalities: List[str],
    *,
    voice: Optional[str] = None,
    audio_voice: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a response.create envelope."""
    response: Dict[str, Any] = {
        "instructions": instructions,
        "modalities": list(modalities),
    }
    if voice:
        response["voice"] = voice
    if audio_voice:
        response["audio"] = {"voice": audio_voice}
    return {"type": RESPONSE_CREATE, "response": response}


def greeting_event(voice: str) -> Dict[str, Any]:
    """The first directive after the channel opens: the AI speaks first."""
    return response_create(GREETING_INSTRUCTIONS, ["audio"], voice=voice)


def voice_change_event(voice: str) -> Dict[str, Any]:
    """Ask the provider to continue with another voice and say so."""
    return response_create(
        f"I'm now speaking with the {voice} voice. How does this sound?",
        ["audio", "text"],
        audio_voice=voice,
    )


def encode_event(envelope: Dict[str, Any]) -> str:
    return json.dumps(envelope, ensure_ascii=False)
