"""
Realtime Call Bridge - Session Routes

Creates call sessions ahead of the call and exposes their status.
A session must exist before the telephony provider opens its media stream.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from callbridge.telephony.session_store import SessionRegistry
from .dependencies import get_registry
from .schemas import SessionCreateRequest, SessionCreateResponse, SessionStatusResponse

router = APIRouter(tags=["sessions"])


@router.post(
    "/session",
    response_model=SessionCreateResponse,
)
async def create_session(
    request: Optional[SessionCreateRequest] = None,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionCreateResponse:
    """
    Create a new call session.

    Missing attributes are filled with the configured defaults.
    """
    request = request or SessionCreateRequest()

    session_id = await registry.create(
        prompt=request.prompt,
        external_call_id=request.call_id,
        contact_name=request.contact_name,
        voice_id=request.voice_id,
        language=request.language,
    )
    return SessionCreateResponse(session_id=session_id)


@router.get(
    "/session/{session_id}",
    response_model=SessionStatusResponse,
)
async def get_session_status(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionStatusResponse:
    """
    Get the current state of a session.

    Raises:
        SessionNotFoundError: If the session does not exist (404)
    """
    session = await registry.get_or_raise(session_id)

    return SessionStatusResponse(
        session_id=session.id,
        call_id=session.external_call_id,
        language=session.language,
        voice_id=session.voice_id,
        created_at=session.created_at,
        age_seconds=round(session.age_seconds(), 3),
        ended=session.ended,
        streaming=session.active_stream_sid is not None and not session.ended,
        transcript_entries=len(session.transcript),
    )
