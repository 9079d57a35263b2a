"""
Realtime Call Bridge - Telephony Module

Inbound side of the bridge: the provider's media-stream protocol.

Components:
- router: Call-instruction (TwiML) endpoint and media-stream WebSocket
- websocket: Per-connection stream handler
- session_store: Session registry
- models: Media-stream wire models
"""

from .models import StreamState, parse_stream_message
from .session_store import SessionRegistry

__all__ = [
    "StreamState",
    "SessionRegistry",
    "parse_stream_message",
]
