"""
Voice Session configuration.

Resolved once by the caller (from the environment or explicitly) and passed
into the orchestrator; the core never reads the environment itself.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from logging_setup import get_logger, Component


logger = get_logger(Component.VOICE_SESSION)

DEFAULT_MODEL = "gpt-4o-realtime-preview-2024-10-01"
DEFAULT_VOICE = "alloy"
VALID_VOICES = ("alloy", "ash", "ballad", "coral", "echo", "sage", "shimmer", "verse", "marin", "cedar")


def load_env_files(root: Optional[Path] = None) -> None:
    """
    Load .env_local / .env.local for local development.

    Existing environment variables are never overridden.
    """
    root = root or Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def _parse_float_env(key: str, default: float) -> float:
    """
    Parse a numeric environment variable, stripping comments and whitespace.

    Handles cases like:
    - "15  # seconds" -> 15.0
    - "7.5" -> 7.5
    - None / garbage -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()

    if not value:
        return default

    try:
        return float(value)
    except ValueError:
        return default


def resolve_voice(voice: Optional[str]) -> str:
    """Return a provider voice from the catalogue, falling back to alloy."""
    if voice in VALID_VOICES:
        return voice
    if voice:
        logger.warning("Unknown voice requested, falling back", voice=voice, fallback=DEFAULT_VOICE)
    return DEFAULT_VOICE


@dataclass(frozen=True)
class RealtimeConfig:
    """Realtime session configuration."""

    # Token service (mints ephemeral provider tokens)
    token_service_url: str = "http://localhost:3001"

    # Realtime provider
    provider_base_url: str = "https://api.openai.com/v1"
    model: str = DEFAULT_MODEL
    voice: str = DEFAULT_VOICE

    # Upper bound for each network step of the negotiation
    negotiation_timeout: float = 15.0

    # WebRTC
    stun_server_url: Optional[str] = "stun:stun.l.google.com:19302"

    # Local capture (ffmpeg input device / format, e.g. "default" + "pulse")
    microphone_device: str = "default"
    microphone_format: Optional[str] = "pulse"

    # Instruction assembly
    therapist_preset: str = "compassionate"
    custom_instructions: Optional[str] = None

    # Persistence collaborator
    session_history_path: Optional[str] = None

    def __post_init__(self):
        if self.negotiation_timeout <= 0:
            raise ValueError("negotiation_timeout must be positive")

    @classmethod
    def from_env(cls) -> "RealtimeConfig":
        """Load configuration from environment variables."""
        return cls(
            token_service_url=os.environ.get("TOKEN_SERVICE_URL", "http://localhost:3001").rstrip("/"),
            provider_base_url=os.environ.get("REALTIME_PROVIDER_URL", "https://api.openai.com/v1").rstrip("/"),
            model=os.environ.get("REALTIME_MODEL", DEFAULT_MODEL),
            voice=resolve_voice(os.environ.get("REALTIME_VOICE", DEFAULT_VOICE)),
            negotiation_timeout=_parse_float_env("NEGOTIATION_TIMEOUT_SECONDS", default=15.0),
            stun_server_url=os.environ.get("STUN_SERVER_URL", "stun:stun.l.google.com:19302") or None,
            microphone_device=os.environ.get("MICROPHONE_DEVICE", "default"),
            microphone_format=os.environ.get("MICROPHONE_FORMAT", "pulse") or None,
            therapist_preset=os.environ.get("THERAPIST_PRESET", "compassionate"),
            custom_instructions=os.environ.get("CUSTOM_INSTRUCTIONS") or None,
            session_history_path=os.environ.get("SESSION_HISTORY_PATH") or None,
        )
