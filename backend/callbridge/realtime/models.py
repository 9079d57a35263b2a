"""
Realtime Call Bridge - AI Realtime Protocol Models

Pydantic models for the hosted realtime conversational-AI WebSocket protocol.

Client -> server:
    session.update              one-time session configuration
    input_audio_buffer.append   one caller audio frame
    response.create             request the assistant's (opening) turn

Server -> client (events the bridge acts on):
    session.created
    response.audio.delta
    response.audio_transcript.done
    conversation.item.input_audio_transcription.completed
    input_audio_buffer.speech_started
    error
"""

import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from callbridge.config import Settings
from callbridge.core.exceptions import InvalidRealtimeEventError


class RealtimeEventType(str, Enum):
    """Server event types the bridge dispatches on."""
    SESSION_CREATED = "session.created"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    RESPONSE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
    INPUT_AUDIO_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    ERROR = "error"


class RealtimeState(str, Enum):
    """Lifecycle of one AI realtime connection."""
    CONNECTING = "connecting"
    CONFIGURED = "configured"
    READY = "ready"
    CLOSED = "closed"


# =============================================================================
# Client Events
# =============================================================================

class _ClientEvent(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class InputAudioTranscription(BaseModel):
    model: str


class TurnDetection(BaseModel):
    type: Literal["server_vad"] = "server_vad"
    threshold: float
    prefix_padding_ms: int
    silence_duration_ms: int


class SessionConfig(BaseModel):
    """Session parameters sent once when the connection opens."""
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    instructions: str
    voice: str
    input_audio_format: str
    output_audio_format: str
    input_audio_transcription: Optional[InputAudioTranscription] = None
    turn_detection: Optional[TurnDetection] = None


class SessionUpdateEvent(_ClientEvent):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig

    @classmethod
    def from_settings(cls, instructions: str, settings: Settings) -> "SessionUpdateEvent":
        """Build the configuration message for one call."""
        return cls(
            session=SessionConfig(
                instructions=instructions,
                voice=settings.realtime_voice,
                input_audio_format=settings.realtime_audio_format,
                output_audio_format=settings.realtime_audio_format,
                input_audio_transcription=InputAudioTranscription(
                    model=settings.realtime_transcription_model,
                ),
                turn_detection=TurnDetection(
                    threshold=settings.vad_threshold,
                    prefix_padding_ms=settings.vad_prefix_padding_ms,
                    silence_duration_ms=settings.vad_silence_duration_ms,
                ),
            )
        )


class InputAudioBufferAppendEvent(_ClientEvent):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str


class ResponseOptions(BaseModel):
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])


class ResponseCreateEvent(_ClientEvent):
    type: Literal["response.create"] = "response.create"
    response: ResponseOptions = Field(default_factory=ResponseOptions)


# =============================================================================
# Server Events
# =============================================================================

class RealtimeServerEvent(BaseModel):
    """Any server event; unknown fields are kept."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)
    event_id: Optional[str] = None


class AudioDeltaEvent(RealtimeServerEvent):
    delta: str = ""


class TranscriptDoneEvent(RealtimeServerEvent):
    transcript: Optional[str] = None


class ErrorEvent(RealtimeServerEvent):
    error: Dict[str, Any] = Field(default_factory=dict)


_SERVER_MODELS = {
    RealtimeEventType.RESPONSE_AUDIO_DELTA.value: AudioDeltaEvent,
    RealtimeEventType.RESPONSE_AUDIO_TRANSCRIPT_DONE.value: TranscriptDoneEvent,
    RealtimeEventType.INPUT_AUDIO_TRANSCRIPTION_COMPLETED.value: TranscriptDoneEvent,
    RealtimeEventType.ERROR.value: ErrorEvent,
}


def parse_realtime_event(raw: Union[str, bytes]) -> RealtimeServerEvent:
    """
    Parse and validate one server event.

    Raises:
        InvalidRealtimeEventError: If the payload is not a JSON object with a
            type, or a known event type has the wrong shape
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
        raise InvalidRealtimeEventError("Realtime event is not valid JSON", details={"error": str(e)})

    if not isinstance(data, dict):
        raise InvalidRealtimeEventError("Realtime event is not a JSON object")

    event_type = data.get("type")
    model = RealtimeServerEvent
    if isinstance(event_type, str):
        model = _SERVER_MODELS.get(event_type, RealtimeServerEvent)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidRealtimeEventError(
            "Malformed realtime event",
            details={"type": data.get("type"), "errors": e.errors(include_url=False)},
        )
