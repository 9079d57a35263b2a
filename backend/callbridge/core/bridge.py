"""
Realtime Call Bridge - Call Bridge Controller

Pairs exactly one telephony stream with exactly one AI realtime client for
the lifetime of a call.

Architecture:
    Telephony handler --(caller audio)--> CallBridge --> RealtimeClient
    RealtimeClient --(events)--> CallBridge --(outbound queue)--> telephony socket

    The AI leg never writes to the telephony socket directly. Audio deltas
    and barge-in clears are tagged with the telephony stream ID and pushed
    onto one FIFO queue, drained by a single writer task, so a clear is
    always delivered after the audio it discards and before any audio that
    follows it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

from callbridge.config import Settings
from callbridge.core.types import Role, Session
from callbridge.realtime.client import RealtimeClient, RealtimeConnect
from callbridge.telephony.models import (
    ClearMessage,
    OutboundStreamMessage,
    OutgoingMediaMessage,
)

logger = logging.getLogger(__name__)

TelephonySend = Callable[[str], Awaitable[None]]


class CallBridge:
    """
    Controller for one call's pair of connections.

    Attributes:
        session: The session this call resolved to
        stream_sid: Telephony stream ID (set by open())
        call_sid: Telephony call-leg ID (set by open())
        frames_forwarded: Caller frames relayed to the AI leg
        frames_dropped: Caller frames dropped because the AI leg was not ready
        clears_sent: Barge-in clear commands queued for the telephony leg
    """

    def __init__(
        self,
        session: Session,
        settings: Settings,
        send_to_telephony: TelephonySend,
        realtime_connect: Optional[RealtimeConnect] = None,
    ):
        self.session = session
        self.stream_sid: Optional[str] = None
        self.call_sid: Optional[str] = None

        self._send_to_telephony = send_to_telephony
        self._outbound: asyncio.Queue[OutboundStreamMessage] = asyncio.Queue()
        self._realtime = RealtimeClient(
            session=session,
            settings=settings,
            sink=self,
            connect=realtime_connect,
        )
        self._realtime_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._closed = False
        self._relay_stopped = False

        self.frames_forwarded = 0
        self.frames_dropped = 0
        self.clears_sent = 0

    @property
    def realtime(self) -> RealtimeClient:
        return self._realtime

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, stream_sid: str, call_sid: str) -> None:
        """Bind the telephony identifiers and open the AI leg."""
        if self._realtime_task is not None:
            raise RuntimeError("CallBridge is already open")

        self.stream_sid = stream_sid
        self.call_sid = call_sid

        self._writer_task = asyncio.create_task(self._write_outbound())
        self._realtime_task = asyncio.create_task(self._realtime.run())

        logger.info("Call bridge opened")

    async def close(self) -> None:
        """Tear down the AI leg and stop relaying. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        await self._realtime.close()

        for task in (self._realtime_task, self._writer_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        logger.info(
            "Call bridge closed: forwarded=%d, dropped=%d, clears=%d",
            self.frames_forwarded,
            self.frames_dropped,
            self.clears_sent,
        )

    # =========================================================================
    # Telephony -> AI
    # =========================================================================

    async def forward_caller_audio(self, payload: str) -> bool:
        """
        Relay one caller audio frame to the AI leg.

        Frames arriving before the AI leg is READY are dropped, never queued.

        Returns:
            True if the frame was relayed
        """
        if self._closed or not self._realtime.ready:
            self.frames_dropped += 1
            return False

        sent = await self._realtime.append_audio(payload)
        if sent:
            self.frames_forwarded += 1
        else:
            self.frames_dropped += 1
        return sent

    # =========================================================================
    # AI -> Telephony (RealtimeEventSink)
    # =========================================================================

    def on_assistant_audio(self, delta: str) -> None:
        if not self._relaying():
            return
        self._outbound.put_nowait(OutgoingMediaMessage.for_stream(self.stream_sid, delta))

    def on_speech_started(self) -> None:
        if not self._relaying():
            return
        self._outbound.put_nowait(ClearMessage(stream_sid=self.stream_sid))
        self.clears_sent += 1

    def on_transcript(self, role: Role, text: str) -> None:
        if self.session.ended:
            logger.debug("Ignoring %s transcript after call end", role.value)
            return
        self.session.add_transcript(role, text)

    async def _write_outbound(self) -> None:
        """Drain the outbound queue to the telephony socket, in order."""
        while True:
            message = await self._outbound.get()
            try:
                await self._send_to_telephony(message.to_json())
            except Exception as e:
                logger.warning("Telephony send failed, stopping outbound relay: %s", str(e))
                self._relay_stopped = True
                self._discard_outbound()
                return

    def _relaying(self) -> bool:
        return not (self._closed or self._relay_stopped) and bool(self.stream_sid)

    def _discard_outbound(self) -> None:
        while not self._outbound.empty():
            self._outbound.get_nowait()
