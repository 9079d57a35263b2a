"""
Realtime Call Bridge - AI Realtime Client

One outbound realtime connection per call. Configures the AI session,
relays caller audio into it, and turns its events into transcript entries,
outbound audio frames and barge-in signals.

Lifecycle:
    CONNECTING -> CONFIGURED (session.update sent)
               -> READY      (session.created received, opening turn requested)
               -> CLOSED     (connection closed or failed; never reconnects)

Caller audio is only accepted in READY. Event handling never raises: a
malformed event is logged and dropped, and an AI-side error event is
logged without closing the connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from callbridge.config import Settings
from callbridge.core.exceptions import (
    ConfigurationError,
    InvalidRealtimeEventError,
    RealtimeConnectionError,
)
from callbridge.core.types import Role, Session
from .models import (
    AudioDeltaEvent,
    ErrorEvent,
    InputAudioBufferAppendEvent,
    RealtimeEventType,
    RealtimeState,
    ResponseCreateEvent,
    SessionUpdateEvent,
    TranscriptDoneEvent,
    parse_realtime_event,
)

logger = logging.getLogger(__name__)

RealtimeConnect = Callable[..., Awaitable[Any]]
"""Opens a realtime WebSocket: connect(url, additional_headers=...) -> connection."""


class RealtimeEventSink(Protocol):
    """Receiver of AI-leg output (implemented by the call bridge)."""

    def on_assistant_audio(self, delta: str) -> None:
        ...

    def on_transcript(self, role: Role, text: str) -> None:
        ...

    def on_speech_started(self) -> None:
        ...


class RealtimeClient:
    """
    Client for one AI realtime connection.

    Attributes:
        state: Current RealtimeState
        frames_sent: Caller audio frames appended to the AI input buffer
    """

    def __init__(
        self,
        session: Session,
        settings: Settings,
        sink: RealtimeEventSink,
        connect: Optional[RealtimeConnect] = None,
    ):
        """
        Args:
            session: Session whose prompt configures the AI leg
            settings: Realtime URL, credentials, voice, codec and VAD settings
            sink: Receives audio deltas, transcripts and barge-in signals
            connect: Connection factory (defaults to websockets.connect)
        """
        self._session = session
        self._settings = settings
        self._sink = sink
        self._connect = connect or websockets.connect
        self._connection = None
        self._send_lock = asyncio.Lock()

        self.state = RealtimeState.CONNECTING
        self.frames_sent = 0

    @property
    def ready(self) -> bool:
        """True once the remote has acknowledged session creation."""
        return self.state == RealtimeState.READY

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> None:
        """
        Open the connection and send the session configuration.

        Raises:
            ConfigurationError: If no API key is configured
            RealtimeConnectionError: If the connection cannot be established
        """
        if not self._settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            self._connection = await self._connect(
                self._settings.realtime_url,
                additional_headers=headers,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise RealtimeConnectionError(
                f"Could not connect to realtime API: {e}",
                details={"url": self._settings.realtime_url},
            ) from e

        logger.info("Realtime connection open")

        await self._send(SessionUpdateEvent.from_settings(self._session.prompt, self._settings))
        self.state = RealtimeState.CONFIGURED

    async def run(self) -> None:
        """
        Connect, configure, and dispatch server events until the connection closes.

        Never raises (except on cancellation): connection failures are
        logged and leave the client CLOSED.
        """
        try:
            await self.connect()

            async for raw in self._connection:
                await self.handle_message(raw)

            logger.info("Realtime connection closed")

        except (ConfigurationError, RealtimeConnectionError) as e:
            logger.error("Realtime leg unavailable: %s", e.message)
        except ConnectionClosedError as e:
            logger.warning("Realtime connection lost: code=%s reason=%s", e.code, e.reason)
        except Exception as e:
            logger.error("Realtime client error: %s", str(e), exc_info=True)
        finally:
            self.state = RealtimeState.CLOSED

    async def close(self) -> None:
        """Close the connection if it is still open."""
        previous = self.state
        self.state = RealtimeState.CLOSED

        if self._connection is None or previous == RealtimeState.CLOSED:
            return

        try:
            await self._connection.close()
        except Exception as e:
            logger.debug("Error closing realtime connection: %s", str(e))

    # =========================================================================
    # Caller Audio
    # =========================================================================

    async def append_audio(self, payload: str) -> bool:
        """
        Append one caller audio frame to the AI input buffer.

        Returns:
            True if the frame was sent; False if the client is not READY or
            the connection dropped
        """
        if not self.ready:
            return False

        try:
            await self._send(InputAudioBufferAppendEvent(audio=payload))
        except ConnectionClosed as e:
            logger.warning("Realtime connection closed while sending audio: %s", str(e))
            self.state = RealtimeState.CLOSED
            return False

        self.frames_sent += 1
        return True

    # =========================================================================
    # Server Events
    # =========================================================================

    async def handle_message(self, raw: Union[str, bytes]) -> None:
        """Parse and dispatch one server event."""
        try:
            event = parse_realtime_event(raw)
        except InvalidRealtimeEventError as e:
            logger.warning("Dropping malformed realtime event: %s", e.message)
            return

        event_type = event.type

        if event_type == RealtimeEventType.SESSION_CREATED.value:
            await self._on_session_created()

        elif isinstance(event, AudioDeltaEvent):
            if event.delta:
                self._sink.on_assistant_audio(event.delta)

        elif isinstance(event, TranscriptDoneEvent):
            if event.transcript:
                role = (
                    Role.AGENT
                    if event_type == RealtimeEventType.RESPONSE_AUDIO_TRANSCRIPT_DONE.value
                    else Role.USER
                )
                self._sink.on_transcript(role, event.transcript)

        elif event_type == RealtimeEventType.SPEECH_STARTED.value:
            logger.debug("Caller speech started")
            self._sink.on_speech_started()

        elif isinstance(event, ErrorEvent):
            logger.error("Realtime error event: %s", event.error)

        else:
            logger.debug("Unhandled realtime event: %s", event_type)

    async def _on_session_created(self) -> None:
        if self.state == RealtimeState.CLOSED:
            return

        self.state = RealtimeState.READY
        logger.info("Realtime session created, requesting opening turn")

        # The assistant always speaks first
        await self._send(ResponseCreateEvent())

    async def _send(self, event) -> None:
        async with self._send_lock:
            await self._connection.send(event.to_json())
