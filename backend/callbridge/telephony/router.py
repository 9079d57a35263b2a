"""
Realtime Call Bridge - Telephony Endpoints

- POST /twiml: call instructions telling the provider to open a media
  stream back to this service, carrying the session ID
- WS /media-stream: the provider's media stream, one handler per call
"""

from __future__ import annotations

import logging
from typing import Optional
from xml.sax.saxutils import quoteattr

from fastapi import APIRouter, Depends, Query, WebSocket
from fastapi.responses import Response

from callbridge.api.dependencies import get_public_host
from callbridge.core.logging import LogContext, mask_session_id
from .websocket import SESSION_PARAMETER, TelephonyStreamHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telephony"])

MEDIA_STREAM_PATH = "/media-stream"


def build_stream_twiml(host: str, session_id: Optional[str]) -> str:
    """
    Build TwiML connecting the call to the media-stream endpoint.

    The session ID is delivered as a custom parameter on the stream's
    start event.
    """
    url = f"wss://{host}{MEDIA_STREAM_PATH}"
    parameter = ""
    if session_id:
        parameter = (
            f"\n      <Parameter name={quoteattr(SESSION_PARAMETER)} "
            f"value={quoteattr(session_id)}/>"
        )

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
  <Connect>
    <Stream url={quoteattr(url)}>{parameter}
    </Stream>
  </Connect>
</Response>"""


@router.post(
    "/twiml",
    response_class=Response,
    summary="Call instructions",
    description="Returns TwiML that opens a media stream for the given session.",
)
async def get_twiml(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    host: str = Depends(get_public_host),
) -> Response:
    """Return streaming instructions for the telephony provider."""
    if not session_id:
        logger.warning("TwiML requested without sessionId")

    logger.info("TwiML served: session=%s", mask_session_id(session_id))

    return Response(
        content=build_stream_twiml(host, session_id),
        media_type="application/xml",
    )


@router.websocket(MEDIA_STREAM_PATH)
async def media_stream(
    websocket: WebSocket,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
):
    """
    Telephony media-stream endpoint.

    The session is resolved from the start event's custom parameter, with
    the `sessionId` query parameter as fallback.
    """
    state = websocket.app.state

    handler = TelephonyStreamHandler(
        websocket=websocket,
        registry=state.registry,
        lifecycle=state.lifecycle,
        settings=state.settings,
        url_session_id=session_id,
        realtime_connect=state.realtime_connect,
    )

    with LogContext(session_id=session_id):
        await handler.run()
