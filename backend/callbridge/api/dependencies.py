"""
Realtime Call Bridge - API Dependencies

FastAPI dependencies resolving the per-application components stored on
app.state by the lifespan.
"""

from fastapi import Request

from callbridge.telephony.session_store import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    """Dependency to get the session registry from app state."""
    return request.app.state.registry


def get_public_host(request: Request) -> str:
    """Host name the telephony provider should connect back to."""
    return request.headers.get("host", "localhost")
