"""
Realtime Call Bridge - Telephony Stream Handler

Handles one inbound telephony media-stream WebSocket for the duration of a
call.

Protocol:
1. Provider connects to /media-stream (optionally with ?sessionId=...)
2. Provider sends "connected" (informational)
3. Provider sends "start" with streamSid, callSid and customParameters;
   the session is resolved and the AI leg is opened
4. Provider sends "media" frames with base64 mu-law caller audio
5. Provider sends "stop" when the call ends, then closes the socket

State machine:
    INIT --start--> STARTED --media--> STREAMING --stop/close--> TERMINATED

Error Handling:
- Malformed frames are logged and dropped; the connection stays open
- An unresolvable session at "start" closes the connection immediately
  and no AI leg is opened
- Connection close always finalizes the call (idempotent) and closes the
  paired AI leg
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from callbridge.config import Settings
from callbridge.core.bridge import CallBridge
from callbridge.core.exceptions import InvalidMessageError, SessionResolutionError
from callbridge.core.lifecycle import SessionLifecycleManager
from callbridge.core.logging import call_id_var, mask_session_id, session_id_var, stream_id_var
from callbridge.core.types import Session
from callbridge.realtime.client import RealtimeConnect
from .models import (
    ConnectedMessage,
    MediaMessage,
    StartMessage,
    StartMetadata,
    StopMessage,
    StreamState,
    parse_stream_message,
)
from .session_store import SessionRegistry

logger = logging.getLogger(__name__)

SESSION_PARAMETER = "sessionId"

# Policy violation: the stream did not identify a usable session
CLOSE_CODE_SESSION_UNRESOLVED = 1008


class TelephonyStreamHandler:
    """
    Handler for one telephony media-stream connection.

    Attributes:
        state: Current StreamState
        session_id: Resolved session ID (None until "start" succeeds)
        stream_sid: Provider stream ID from "start"
        call_sid: Provider call-leg ID from "start"
        bridge: CallBridge pairing this stream with its AI leg
    """

    def __init__(
        self,
        websocket: WebSocket,
        registry: SessionRegistry,
        lifecycle: SessionLifecycleManager,
        settings: Settings,
        url_session_id: Optional[str] = None,
        realtime_connect: Optional[RealtimeConnect] = None,
    ):
        """
        Args:
            websocket: Accepted or pending telephony WebSocket
            registry: Session registry used to resolve the call's session
            lifecycle: Finalizes the call when the stream ends
            settings: Application settings (passed to the AI leg)
            url_session_id: Session ID from the connection URL (fallback)
            realtime_connect: AI-leg connection factory override
        """
        self._websocket = websocket
        self._registry = registry
        self._lifecycle = lifecycle
        self._settings = settings
        self._url_session_id = url_session_id or None
        self._realtime_connect = realtime_connect

        self.state = StreamState.INIT
        self.session_id: Optional[str] = None
        self.session: Optional[Session] = None
        self.stream_sid: Optional[str] = None
        self.call_sid: Optional[str] = None
        self.bridge: Optional[CallBridge] = None

    # =========================================================================
    # Connection Loop
    # =========================================================================

    async def run(self) -> None:
        """Accept the connection and process frames until it closes."""
        if self._websocket.client_state == WebSocketState.CONNECTING:
            await self._websocket.accept()

        logger.info(
            "Telephony WebSocket connected: url_session=%s",
            mask_session_id(self._url_session_id) or "none",
        )

        try:
            while True:
                message = await self._websocket.receive()

                if message["type"] == "websocket.disconnect":
                    break

                text = message.get("text")
                if text is None:
                    logger.debug("Ignoring binary telephony frame")
                    continue

                await self.handle_message(text)

        except SessionResolutionError as e:
            logger.error("%s; closing stream", e.message)
            await self._close_websocket(CLOSE_CODE_SESSION_UNRESOLVED)

        except WebSocketDisconnect:
            logger.info("Telephony WebSocket disconnected")

        except Exception as e:
            logger.error("Telephony WebSocket error: %s", str(e), exc_info=True)

        finally:
            await self.on_close()

    async def handle_message(self, text: str) -> None:
        """
        Dispatch one inbound frame.

        Raises:
            SessionResolutionError: If a "start" frame names no usable session
        """
        try:
            message = parse_stream_message(text)
        except InvalidMessageError as e:
            logger.warning("Dropping malformed telephony frame: %s", e.message)
            return

        if message is None:
            return

        if self.state == StreamState.TERMINATED:
            logger.debug("Ignoring '%s' after stream end", message.event)
            return

        if isinstance(message, ConnectedMessage):
            logger.info("Telephony stream connected: protocol=%s", message.protocol)

        elif isinstance(message, StartMessage):
            await self._handle_start(message)

        elif isinstance(message, MediaMessage):
            await self._handle_media(message)

        elif isinstance(message, StopMessage):
            await self._handle_stop()

    async def on_close(self) -> None:
        """Close the AI leg and finalize the call. Safe to call repeatedly."""
        if self.bridge is not None:
            await self.bridge.close()

        await self._finalize()
        self.state = StreamState.TERMINATED

        logger.info("Telephony WebSocket closed")

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def _handle_start(self, message: StartMessage) -> None:
        if self.state != StreamState.INIT:
            logger.warning("Duplicate start event ignored")
            return

        start = message.start
        self.stream_sid = start.stream_sid
        self.call_sid = start.call_sid

        session = await self._resolve_session(start)
        if session is None:
            self.state = StreamState.TERMINATED
            raise SessionResolutionError(
                "No valid session found for stream",
                details={
                    "url_session": mask_session_id(self._url_session_id),
                    "custom_parameters": sorted(start.custom_parameters),
                },
            )

        self.session = session
        self.session_id = session.id

        # Context is per connection task, and copied into the AI-leg tasks
        session_id_var.set(session.id)
        call_id_var.set(self.call_sid)
        stream_id_var.set(self.stream_sid)

        logger.info("Telephony stream started")

        self.bridge = CallBridge(
            session=session,
            settings=self._settings,
            send_to_telephony=self._send_text,
            realtime_connect=self._realtime_connect,
        )
        await self.bridge.open(self.stream_sid, self.call_sid)

        self.state = StreamState.STARTED

    async def _handle_media(self, message: MediaMessage) -> None:
        if self.state not in (StreamState.STARTED, StreamState.STREAMING) or self.bridge is None:
            logger.debug("Media before start dropped")
            return

        self.state = StreamState.STREAMING
        await self.bridge.forward_caller_audio(message.media.payload)

    async def _handle_stop(self) -> None:
        logger.info("Telephony stream stopped")
        await self._finalize()
        self.state = StreamState.TERMINATED

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _resolve_session(self, start: StartMetadata) -> Optional[Session]:
        """
        Resolve and pair the stream's session.

        Precedence: the start event's custom parameter first, then the
        session ID from the connection URL.
        """
        candidates = []
        custom_session_id = start.custom_parameter(SESSION_PARAMETER)
        if custom_session_id:
            candidates.append(custom_session_id)
        if self._url_session_id and self._url_session_id not in candidates:
            candidates.append(self._url_session_id)

        for candidate in candidates:
            session = await self._registry.attach(candidate, start.stream_sid)
            if session is not None:
                return session
            logger.warning("Session candidate not usable: %s", mask_session_id(candidate))

        return None

    async def _finalize(self) -> None:
        if self.session_id:
            await self._lifecycle.finalize(self.session_id, self.call_sid)

    async def _send_text(self, text: str) -> None:
        await self._websocket.send_text(text)

    async def _close_websocket(self, code: int) -> None:
        if self._websocket.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._websocket.close(code=code)
        except RuntimeError as e:
            logger.debug("WebSocket already closed: %s", str(e))
