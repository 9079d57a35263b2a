"""
Realtime Call Bridge - API Schemas

Pydantic models for request/response validation.
Field names follow the camelCase contract used by the session creator.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ===========================================
# Session Schemas
# ===========================================

class SessionCreateRequest(_CamelModel):
    """Request to create a call session. Every field is optional."""

    prompt: Optional[str] = Field(
        default=None,
        description="System instructions for the AI leg",
    )
    call_id: Optional[str] = Field(
        default=None,
        alias="callId",
        description="External call ID reported back to the results collector",
    )
    contact_name: Optional[str] = Field(default=None, alias="contactName")
    voice_id: Optional[str] = Field(default=None, alias="voiceId")
    language: Optional[str] = Field(
        default=None,
        description="Session language (selects transcript speaker labels)",
    )


class SessionCreateResponse(_CamelModel):
    """Response after creating a session."""

    session_id: str = Field(..., alias="sessionId")


class SessionStatusResponse(_CamelModel):
    """Snapshot of a session's state."""

    session_id: str = Field(..., alias="sessionId")
    call_id: Optional[str] = Field(default=None, alias="callId")
    language: str
    voice_id: str = Field(..., alias="voiceId")
    created_at: datetime = Field(..., alias="createdAt")
    age_seconds: float = Field(..., alias="ageSeconds")
    ended: bool
    streaming: bool = Field(..., description="A telephony stream is paired with the session")
    transcript_entries: int = Field(..., alias="transcriptEntries")


# ===========================================
# Health Schemas
# ===========================================

class HealthResponse(_CamelModel):
    """Health check response."""

    status: str = Field(default="ok")
    active_sessions: int = Field(default=0, alias="activeSessions")
