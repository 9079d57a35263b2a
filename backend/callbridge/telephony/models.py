"""
Realtime Call Bridge - Telephony Stream Models

Pydantic models for the telephony media-stream WebSocket protocol, plus the
per-connection stream state.

Inbound (provider -> bridge), JSON text frames:
    {"event": "connected", ...}
    {"event": "start", "start": {"streamSid", "callSid", "customParameters"}}
    {"event": "media", "media": {"payload": "<base64 mu-law>"}}
    {"event": "stop", ...}

Outbound (bridge -> provider):
    {"event": "media", "streamSid": "...", "media": {"payload": "..."}}
    {"event": "clear", "streamSid": "..."}
"""

import json
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from callbridge.core.exceptions import InvalidMessageError


class StreamEvent(str, Enum):
    """Inbound telephony stream events the bridge acts on."""
    CONNECTED = "connected"
    START = "start"
    MEDIA = "media"
    STOP = "stop"


class StreamState(str, Enum):
    """Lifecycle of one telephony stream connection."""
    INIT = "init"
    STARTED = "started"
    STREAMING = "streaming"
    TERMINATED = "terminated"


# =============================================================================
# Inbound Messages
# =============================================================================

class _InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ConnectedMessage(_InboundMessage):
    """First frame after the WebSocket opens. Informational only."""
    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class StartMetadata(_InboundMessage):
    """Call-leg identifiers assigned by the provider."""
    stream_sid: str = Field(..., alias="streamSid", min_length=1)
    call_sid: str = Field(..., alias="callSid", min_length=1)
    custom_parameters: Dict[str, Any] = Field(default_factory=dict, alias="customParameters")
    media_format: Dict[str, Any] = Field(default_factory=dict, alias="mediaFormat")

    def custom_parameter(self, name: str) -> Optional[str]:
        """String value of a custom parameter, or None if absent/empty."""
        value = self.custom_parameters.get(name)
        if value is None or value == "":
            return None
        return str(value)


class StartMessage(_InboundMessage):
    """Stream start, carrying call-leg identifiers and custom parameters."""
    event: Literal["start"]
    start: StartMetadata


class MediaPayload(_InboundMessage):
    payload: str = Field(..., description="Base64-encoded audio frame")
    track: Optional[str] = None


class MediaMessage(_InboundMessage):
    """One frame of caller audio."""
    event: Literal["media"]
    media: MediaPayload


class StopMessage(_InboundMessage):
    """Stream stopped; the call is over."""
    event: Literal["stop"]


InboundStreamMessage = Union[ConnectedMessage, StartMessage, MediaMessage, StopMessage]

_INBOUND_MODELS = {
    StreamEvent.CONNECTED.value: ConnectedMessage,
    StreamEvent.START.value: StartMessage,
    StreamEvent.MEDIA.value: MediaMessage,
    StreamEvent.STOP.value: StopMessage,
}


def parse_stream_message(text: str) -> Optional[InboundStreamMessage]:
    """
    Parse and validate one inbound telephony frame.

    Returns:
        The typed message, or None for well-formed events the bridge does
        not act on (mark, dtmf, ...)

    Raises:
        InvalidMessageError: If the frame is not JSON or has the wrong shape
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidMessageError("Telephony frame is not valid JSON", details={"error": str(e)})

    if not isinstance(data, dict):
        raise InvalidMessageError("Telephony frame is not a JSON object")

    event = data.get("event")
    if not isinstance(event, str):
        raise InvalidMessageError("Telephony frame has no event type")

    model = _INBOUND_MODELS.get(event)
    if model is None:
        return None

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidMessageError(
            f"Malformed '{event}' frame",
            details={"event": event, "errors": e.errors(include_url=False)},
        )


# =============================================================================
# Outbound Messages
# =============================================================================

class _OutboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class OutgoingMediaPayload(BaseModel):
    payload: str


class OutgoingMediaMessage(_OutboundMessage):
    """Assistant audio to play to the caller."""
    event: Literal["media"] = "media"
    stream_sid: str = Field(..., alias="streamSid")
    media: OutgoingMediaPayload

    @classmethod
    def for_stream(cls, stream_sid: str, payload: str) -> "OutgoingMediaMessage":
        return cls(stream_sid=stream_sid, media=OutgoingMediaPayload(payload=payload))


class ClearMessage(_OutboundMessage):
    """Discard audio queued for playback to the caller."""
    event: Literal["clear"] = "clear"
    stream_sid: str = Field(..., alias="streamSid")


OutboundStreamMessage = Union[OutgoingMediaMessage, ClearMessage]
