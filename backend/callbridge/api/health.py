"""
Realtime Call Bridge - Health Check Endpoint

Liveness endpoint for load balancers and the telephony provider's
monitoring.
"""

from fastapi import APIRouter, Depends

from callbridge.telephony.session_store import SessionRegistry
from .dependencies import get_registry
from .schemas import HealthResponse

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    registry: SessionRegistry = Depends(get_registry),
) -> HealthResponse:
    """
    Service health check.

    Returns:
        - status: always "ok" while the process is serving
        - activeSessions: sessions currently held in memory
    """
    return HealthResponse(status="ok", active_sessions=await registry.count())
