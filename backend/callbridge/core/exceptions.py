"""
Realtime Call Bridge - Exception Hierarchy

Every error carries a machine-readable code and the HTTP status it maps to.
Call-scoped errors (malformed frames, AI-leg failures, report failures) are
handled inside the call that raised them; only session lookups surface over
HTTP.
"""

from typing import Optional


class CallBridgeError(Exception):
    """Root of the call bridge error hierarchy."""

    code: str = "CALL_BRIDGE_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details) if details else {}

    def to_dict(self) -> dict:
        """Body of the HTTP error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(CallBridgeError):
    """Session registry error."""
    code = "SESSION_ERROR"
    status_code = 400


class SessionNotFoundError(SessionError):
    """No session with the requested ID."""
    code = "SESSION_NOT_FOUND"
    status_code = 404


# =============================================================================
# Telephony Errors
# =============================================================================

class TelephonyError(CallBridgeError):
    """Error on the telephony streaming leg."""
    code = "TELEPHONY_ERROR"
    status_code = 502


class InvalidMessageError(TelephonyError):
    """Malformed telephony stream frame."""
    code = "INVALID_MESSAGE"
    status_code = 400


class SessionResolutionError(TelephonyError):
    """No session could be resolved for a starting stream."""
    code = "SESSION_UNRESOLVED"
    status_code = 404


# =============================================================================
# Realtime Errors
# =============================================================================

class RealtimeError(CallBridgeError):
    """Error on the AI realtime leg."""
    code = "REALTIME_ERROR"
    status_code = 502


class RealtimeConnectionError(RealtimeError):
    """AI realtime connection could not be established."""
    code = "REALTIME_CONNECTION_FAILED"


class InvalidRealtimeEventError(RealtimeError):
    """Malformed AI realtime event payload."""
    code = "INVALID_REALTIME_EVENT"


# =============================================================================
# Reporting Errors
# =============================================================================

class ResultsReportError(CallBridgeError):
    """Call results could not be delivered to the collector."""
    code = "RESULTS_REPORT_FAILED"
    status_code = 502


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(CallBridgeError):
    """Required configuration is missing or invalid."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
