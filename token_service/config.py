"""
Token service configuration.
Loads from environment variables with sensible defaults.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from voice_session.config import DEFAULT_MODEL, DEFAULT_VOICE, load_env_files


@dataclass
class TokenServiceConfig:
    """Token service configuration."""

    # Long-lived provider key; requests may also carry their own
    openai_api_key: Optional[str] = None

    # Upstream provider
    provider_base_url: str = "https://api.openai.com/v1"
    default_model: str = DEFAULT_MODEL
    default_voice: str = DEFAULT_VOICE
    upstream_timeout: float = 15.0

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def has_api_key(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "TokenServiceConfig":
        """Load configuration from environment variables (.env_local honoured)."""
        load_env_files()
        origins = os.environ.get("TOKEN_SERVICE_CORS_ORIGINS", "http://localhost:3000")
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            provider_base_url=os.environ.get("REALTIME_PROVIDER_URL", "https://api.openai.com/v1").rstrip("/"),
            default_model=os.environ.get("REALTIME_MODEL", DEFAULT_MODEL),
            default_voice=os.environ.get("REALTIME_VOICE", DEFAULT_VOICE),
            upstream_timeout=_parse_float(os.environ.get("TOKEN_SERVICE_UPSTREAM_TIMEOUT"), 15.0),
            host=os.environ.get("TOKEN_SERVICE_HOST", "0.0.0.0"),
            port=int(_parse_float(os.environ.get("TOKEN_SERVICE_PORT"), 3001)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


def _parse_float(value: Optional[str], default: float) -> float:
    """Parse a numeric setting, ignoring trailing comments ("3001  # dev")."""
    if not value:
        return default
    value = value.split("#")[0].strip()
    try:
        return float(value)
    except ValueError:
        return default


def get_config() -> TokenServiceConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = TokenServiceConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests change the environment)."""
    global _config
    _config = None


# Global config instance (lazy loaded)
_config: Optional[TokenServiceConfig] = None
