"""
Realtime Call Bridge - Core Package

Domain types, error hierarchy and per-call orchestration:
- types: Session, transcript and call-result types
- exceptions: Structured error hierarchy
- bridge: Pairs one telephony stream with one AI realtime client
- lifecycle: Idempotent finalize, grace-period deletion and stale-session sweep
"""

from .types import (
    SessionId,
    Role,
    EndedReason,
    TranscriptEntry,
    Session,
    CallResult,
    render_transcript,
)
from .exceptions import (
    CallBridgeError,
    SessionNotFoundError,
    SessionResolutionError,
    InvalidMessageError,
    RealtimeConnectionError,
    ResultsReportError,
)

__all__ = [
    # Types
    "SessionId",
    "Role",
    "EndedReason",
    "TranscriptEntry",
    "Session",
    "CallResult",
    "render_transcript",
    # Errors
    "CallBridgeError",
    "SessionNotFoundError",
    "SessionResolutionError",
    "InvalidMessageError",
    "RealtimeConnectionError",
    "ResultsReportError",
]
