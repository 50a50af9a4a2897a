"""
Shared logging infrastructure for the realtime session core.

One setup for the Voice Session orchestrator, the milestone engine and the
token service. Lines are JSON objects on stdout:

    {"timestamp": ..., "severity": "info", "component": "gateway",
     "session_id": "3f2c...", "message": "Ephemeral token issued", ...}

Two things never reach the output verbatim:
- provider secrets (sk-..., ephemeral ek_... values, bearer headers) are
  masked wherever they appear, message or field
- PII fields (transcript text) are replaced by their length unless LOG_PII
  is enabled for local debugging
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Component(str, Enum):
    """System components for log tagging."""
    VOICE_SESSION = "voice_session"
    ORCHESTRATOR = "orchestrator"
    GATEWAY = "gateway"
    TRANSPORT = "transport"
    MICROPHONE = "microphone"
    MILESTONES = "milestones"
    PERSISTENCE = "persistence"
    TOKEN_SERVICE = "token_service"
    ERROR_HANDLER = "error_handler"


# LogRecord attributes that are not caller fields
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "component", "session_id", "pii", "taskName"}

_SECRET_PATTERNS = (
    re.compile(r"\bsk-[A-Za-z0-9_\-]{3,}"),
    re.compile(r"\bek_[A-Za-z0-9_\-]{3,}"),
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9_\-\.]+"),
)
_LATENCY_PATTERN = re.compile(r'("latency_ms"\s*:\s*)(\d+)')

ORANGE = "\033[38;5;208m"
RESET = "\033[0m"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def scrub_secrets(text: str) -> str:
    """Mask provider keys, ephemeral tokens and bearer headers in free text."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub("[secret]", text)
    return text


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return scrub_secrets(value)
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def pii_logging_enabled() -> bool:
    """LOG_PII=1 lets PII through verbatim (local debugging only)."""
    return _env_flag("LOG_PII")


def redact(value: Any) -> str:
    return f"[redacted: {len(str(value))} chars]"


def _mask_pii(fields: Dict[str, Any]) -> Dict[str, Any]:
    if pii_logging_enabled():
        return dict(fields)
    return {key: redact(value) for key, value in fields.items()}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    latency_ms is rendered with an "ms" unit, orange on consoles unless
    NO_COLOR is set. That makes the line non-strict JSON on purpose: these
    logs are for people, the event stream is for machines.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": scrub_secrets(record.getMessage()),
        }

        session_id = getattr(record, "session_id", None)
        if session_id:
            entry["session_id"] = session_id

        entry.update(
            (key, _scrub(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )

        pii = getattr(record, "pii", None)
        if pii:
            entry["pii"] = _mask_pii(pii)

        if record.exc_info:
            entry["exception"] = scrub_secrets(self.formatException(record.exc_info))

        line = json.dumps(entry, ensure_ascii=False, default=str)
        if "latency_ms" not in entry:
            return line

        unit = r"\1\2 ms" if _env_flag("NO_COLOR") else rf"\1{ORANGE}\2 ms{RESET}"
        return _LATENCY_PATTERN.sub(unit, line)


class StructuredLogger:
    """
    Component-tagged logger that takes fields as keyword arguments.

    Usage:
        logger = get_logger(Component.ORCHESTRATOR).with_session(session.session_id)
        logger.info("Realtime session active", voice="alloy", latency_ms=840)
        logger.debug_pii("User turn transcribed", text=entry.content)
    """

    def __init__(
        self,
        component: str | Component,
        session_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(self, level: int, message: str, pii: Optional[Dict[str, Any]] = None, **fields):
        if not self.logger.isEnabledFor(level):
            return

        exc_info = fields.pop("exc_info", None)
        extra: Dict[str, Any] = {"component": self.component}
        if self.session_id:
            extra["session_id"] = self.session_id
        # an explicit session_id field wins over the bound one
        extra.update(fields)
        if pii:
            extra["pii"] = pii

        self.logger.log(level, message, exc_info=exc_info, stacklevel=3, extra=extra)

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, **fields)

    def critical(self, message: str, **fields):
        self._log(logging.CRITICAL, message, **fields)

    def exception(self, message: str, **fields):
        """Error with the active exception's traceback attached."""
        fields.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **fields)

    def debug_pii(self, message: str, **pii_fields):
        self._log(logging.DEBUG, message, pii=pii_fields)

    def info_pii(self, message: str, **pii_fields):
        self._log(logging.INFO, message, pii=pii_fields)

    def with_session(self, session_id: str) -> "StructuredLogger":
        """Same component and logger, bound to one session."""
        return StructuredLogger(self.component, session_id=session_id, logger_name=self.logger.name)


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True
) -> None:
    """
    Configure the root logger. Call once at process startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: JSONFormatter (True) or a plain text line (False)
        include_timestamp: Prefix text lines with the time
    """
    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    else:
        fmt = "%(levelname)s - %(component)s - %(message)s"
        if include_timestamp:
            fmt = "%(asctime)s - " + fmt
        formatter = logging.Formatter(fmt, defaults={"component": "unknown"})

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(
    component: str | Component,
    session_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.GATEWAY)
        logger.info("Requesting ephemeral token", model=model)
    """
    return StructuredLogger(component, session_id=session_id)
