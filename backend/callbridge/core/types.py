"""
Realtime Call Bridge - Core Domain Types

Internal type definitions shared by the registry, the two call legs and the
lifecycle manager. These are domain objects, independent of wire formats.

Design Notes:
- Wire messages (telephony and AI realtime) are Pydantic models in their own
  packages and are converted to/from these types at the leg boundary.
- A Session is mutated only by the single call pairing that resolved it,
  and by the lifecycle manager when the call ends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, NewType, Optional, Tuple


# =============================================================================
# Type Aliases
# =============================================================================

SessionId = NewType("SessionId", str)
"""Unique identifier for a call session. Opaque string (UUID4)."""


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def whole_seconds(seconds: float) -> int:
    """Non-negative seconds rounded half up (2.5 -> 3)."""
    return max(0, int(seconds + 0.5))


# =============================================================================
# Enums
# =============================================================================

class Role(str, Enum):
    """Speaker of a transcript entry."""
    USER = "user"
    AGENT = "agent"


class EndedReason(str, Enum):
    """End-reason tag sent with call results."""
    CALL_ENDED = "call_ended"


# Display labels per session language: (user label, agent label)
SPEAKER_LABELS: Dict[str, Tuple[str, str]] = {
    "he": ("לקוח", "סוכן"),
    "en": ("Customer", "Agent"),
}
DEFAULT_LABEL_LANGUAGE = "en"


# =============================================================================
# Transcript
# =============================================================================

@dataclass(frozen=True)
class TranscriptEntry:
    """
    One completed utterance from either leg.

    Entries are immutable once appended; order in the session transcript is
    arrival order of transcription-completion events.
    """
    role: Role
    text: str
    timestamp: datetime = field(default_factory=utcnow)


def speaker_label(role: Role, language: Optional[str]) -> str:
    """Locale display label for a speaker role."""
    labels = SPEAKER_LABELS.get((language or "").lower(), SPEAKER_LABELS[DEFAULT_LABEL_LANGUAGE])
    user_label, agent_label = labels
    return user_label if role == Role.USER else agent_label


def render_transcript(entries: List[TranscriptEntry], language: Optional[str] = None) -> str:
    """
    Render a transcript as newline-joined, speaker-labeled lines.

    Example (language="en"):
        Agent: Hello, how can I help?
        Customer: I'd like to book a table.
    """
    return "\n".join(
        f"{speaker_label(entry.role, language)}: {entry.text}"
        for entry in entries
    )


# =============================================================================
# Session
# =============================================================================

@dataclass
class Session:
    """
    A call session, created before any streaming connection exists.

    Attributes:
        id: Opaque lookup key generated server-side
        prompt: System instructions for the AI leg
        external_call_id: Identifier used by the results collector (optional)
        contact_name: Display metadata, passed through unvalidated
        voice_id: Display/config metadata, passed through unvalidated
        language: Session language; also selects transcript speaker labels
        transcript: Append-only during an active call
        created_at: Creation timestamp (duration and max-age are measured from it)
        ended: False until finalize runs; finalize executes at most once
        active_stream_sid: Telephony stream currently paired with this session
    """
    id: SessionId
    prompt: str
    external_call_id: Optional[str] = None
    contact_name: str = ""
    voice_id: str = "alloy"
    language: str = "he"
    transcript: List[TranscriptEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    ended: bool = False
    active_stream_sid: Optional[str] = None

    def add_transcript(self, role: Role, text: str) -> TranscriptEntry:
        """Append a transcript entry stamped with the current time."""
        entry = TranscriptEntry(role=role, text=text)
        self.transcript.append(entry)
        return entry

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds elapsed since creation."""
        now = now or utcnow()
        return (now - self.created_at).total_seconds()

    def render_transcript(self) -> str:
        return render_transcript(self.transcript, self.language)


# =============================================================================
# Call Results
# =============================================================================

@dataclass(frozen=True)
class CallResult:
    """
    Outcome of a finalized call, as reported to the results collector.

    Attributes:
        session_id: Internal session the call belonged to
        call_id: External call identifier (from session creation)
        call_sid: Telephony call-leg identifier (None if the stream never started)
        transcript: Rendered, speaker-labeled transcript text
        duration: Whole seconds since session creation
        ended_reason: End-reason tag
    """
    session_id: SessionId
    call_id: Optional[str]
    call_sid: Optional[str]
    transcript: str
    duration: int
    ended_reason: EndedReason = EndedReason.CALL_ENDED

    def to_payload(self, event_type: str) -> dict:
        """Results-report request body."""
        return {
            "type": event_type,
            "callId": self.call_id,
            "callSid": self.call_sid,
            "transcript": self.transcript,
            "duration": self.duration,
            "endedReason": self.ended_reason.value,
        }
