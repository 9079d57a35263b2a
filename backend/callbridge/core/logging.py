"""
Realtime Call Bridge - Structured Logging

Per-call log context (session, call-leg and stream identifiers) carried in
context variables, so every line logged while handling a call is tagged
with it, including lines from the AI-leg tasks spawned for that call.
Identifiers are masked on output and secrets in structured data are
redacted.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple


# =============================================================================
# Call Context
# =============================================================================

session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
call_id_var: ContextVar[Optional[str]] = ContextVar("call_id", default=None)
stream_id_var: ContextVar[Optional[str]] = ContextVar("stream_id", default=None)


def mask_session_id(sid: Optional[str]) -> Optional[str]:
    """First 8 characters of a session ID (a UUID prefix is enough to correlate)."""
    if not sid:
        return None
    return sid[:8]


def mask_call_id(cid: Optional[str]) -> Optional[str]:
    """Provider identifiers (call and stream SIDs) keep only their last 4 characters."""
    if not cid:
        return None
    if len(cid) <= 4:
        return "***"
    return "***" + cid[-4:]


# (output field, variable, masking function), in output order
_CONTEXT_FIELDS: Tuple[Tuple[str, ContextVar, Callable[[Optional[str]], Optional[str]]], ...] = (
    ("session_id", session_id_var, mask_session_id),
    ("call_id", call_id_var, mask_call_id),
    ("stream_id", stream_id_var, mask_call_id),
)


def current_log_context() -> Dict[str, str]:
    """Masked identifiers of the call being handled, if any."""
    context = {}
    for name, var, mask in _CONTEXT_FIELDS:
        value = var.get()
        if value:
            context[name] = mask(value)
    return context


class LogContext:
    """
    Context manager binding call identifiers for the enclosed block.

    Usage:
        with LogContext(session_id="abc123", call_id="CA789"):
            logger.info("Stream started")
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        call_id: Optional[str] = None,
        stream_id: Optional[str] = None,
    ):
        values = {"session_id": session_id, "call_id": call_id, "stream_id": stream_id}
        self._bindings = [
            (var, values[name]) for name, var, _ in _CONTEXT_FIELDS if values[name]
        ]
        self._tokens = []

    def __enter__(self) -> "LogContext":
        self._tokens = [(var, var.set(value)) for var, value in self._bindings]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


# =============================================================================
# Redaction
# =============================================================================

# Substrings of keys whose values never reach the log output
_SENSITIVE_MARKERS = (
    "apikey", "api_key", "token", "secret", "authorization",
    "password", "contact", "phone",
)


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return any(marker in key for marker in _SENSITIVE_MARKERS)


def _redact(value: Any) -> str:
    if isinstance(value, str) and len(value) > 2:
        return "***" + value[-2:]
    if isinstance(value, str):
        return "***"
    return "[REDACTED]"


def mask_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of `data` with credential and contact fields redacted, recursively."""
    masked: Dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive(str(key)):
            masked[key] = _redact(value)
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        elif isinstance(value, list):
            masked[key] = [mask_sensitive_data(v) if isinstance(v, dict) else v for v in value]
        else:
            masked[key] = value
    return masked


# =============================================================================
# Formatters
# =============================================================================

def _record_data(record: logging.LogRecord) -> Optional[Dict[str, Any]]:
    data = getattr(record, "data", None)
    if not data:
        return None
    return mask_sensitive_data(data)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line (production).

    {"timestamp": "...", "level": "INFO", "logger": "callbridge.core.lifecycle",
     "message": "Call ended", "session_id": "3f2a9c1d", "call_id": "***1234",
     "data": {"duration": 42}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(current_log_context())

        data = _record_data(record)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Single-line text for development:

        2024-11-30 12:00:00 | INFO     | callbridge.core.lifecycle [session=3f2a9c1d] | Call ended | {"duration": 42}
    """

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        context = current_log_context()
        tags = ", ".join(
            f"{name.replace('_id', '')}={value}" for name, value in context.items()
        )
        origin = f"{record.name} [{tags}]" if tags else record.name

        line = " | ".join((
            self.formatTime(record, self.datefmt),
            f"{record.levelname:<8}",
            origin,
            record.getMessage(),
        ))

        data = _record_data(record)
        if data:
            line += " | " + json.dumps(data, ensure_ascii=False, default=str)

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def setup_structured_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (production) instead of human-readable text
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for noisy in ("uvicorn.access", "websockets", "httpx"):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger(logging.LoggerAdapter):
    """
    Logger accepting a `data=` dict of structured fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Call ended", data={"duration": 42})
    """

    def process(self, msg, kwargs):
        data = kwargs.pop("data", None)
        if data:
            extra = dict(kwargs.get("extra") or {})
            extra["data"] = data
            kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(logging.getLogger(name), {})
