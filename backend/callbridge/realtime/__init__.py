"""
Realtime Call Bridge - AI Realtime Leg

One outbound realtime WebSocket per call: session configuration, caller
audio relay and server event dispatch.
"""

from .client import RealtimeClient, RealtimeEventSink
from .models import RealtimeState, parse_realtime_event

__all__ = [
    "RealtimeClient",
    "RealtimeEventSink",
    "RealtimeState",
    "parse_realtime_event",
]
