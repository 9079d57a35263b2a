"""
Realtime Call Bridge - Test Configuration and Fixtures

Shared fixtures for all test modules, including in-process fakes for both
WebSocket legs and the results collector.
"""

import asyncio
import json
import os
import sys
import threading
from typing import Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosedOK

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from callbridge.config import Settings
from callbridge.core.lifecycle import SessionLifecycleManager
from callbridge.core.types import CallResult
from callbridge.telephony.session_store import SessionRegistry


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")


# =============================================================================
# Fake AI Realtime Leg
# =============================================================================

_CLOSE = object()


class FakeRealtimeConnection:
    """
    In-process stand-in for a realtime WebSocket connection.

    Server events are queued with push() (or preloaded at construction) and
    yielded by async iteration; everything the client sends is recorded,
    decoded, in `sent`.
    """

    def __init__(self, events: Optional[list] = None):
        self.sent: List[dict] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()
        for event in events or []:
            self.push(event)

    def push(self, event) -> None:
        if not isinstance(event, (str, bytes)):
            event = json.dumps(event)
        self._incoming.put_nowait(event)

    def finish(self) -> None:
        """End the server event stream (remote closed cleanly)."""
        self._incoming.put_nowait(_CLOSE)

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item

    def sent_types(self) -> List[str]:
        return [message["type"] for message in self.sent]


class FakeRealtimeConnector:
    """Connection factory with the websockets.connect call shape."""

    def __init__(self, events: Optional[list] = None, error: Optional[Exception] = None):
        self.events = list(events or [])
        self.error = error
        self.calls: List[dict] = []
        self.connections: List[FakeRealtimeConnection] = []

    async def __call__(self, url, additional_headers=None, **kwargs):
        self.calls.append({"url": url, "headers": dict(additional_headers or {})})
        if self.error is not None:
            raise self.error
        connection = FakeRealtimeConnection(self.events)
        self.connections.append(connection)
        return connection

    @property
    def connection(self) -> FakeRealtimeConnection:
        return self.connections[-1]


# =============================================================================
# Fake Telephony Leg
# =============================================================================

class FakeTelephonySocket:
    """
    Minimal stand-in for a Starlette WebSocket as used by the stream handler.

    Inbound frames are queued with push_json()/push_text(); disconnect()
    ends the stream. Outbound text frames are recorded, decoded, in `sent`.
    """

    def __init__(self):
        self.client_state = WebSocketState.CONNECTING
        self.sent: List[dict] = []
        self.close_code: Optional[int] = None
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED

    def push_text(self, text: str) -> None:
        self._inbound.put_nowait({"type": "websocket.receive", "text": text})

    def push_json(self, data: dict) -> None:
        self.push_text(json.dumps(data))

    def disconnect(self) -> None:
        self._inbound.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def receive(self) -> dict:
        return await self._inbound.get()

    async def send_text(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000) -> None:
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED

    def sent_events(self) -> List[str]:
        return [message["event"] for message in self.sent]


# =============================================================================
# Fake Results Collector
# =============================================================================

class RecordingReporter:
    """Results reporter that records every report it receives."""

    def __init__(self):
        self.results: List[CallResult] = []
        self.reported = threading.Event()

    async def report(self, result: CallResult) -> bool:
        self.results.append(result)
        self.reported.set()
        return True


# =============================================================================
# Protocol Frame Builders
# =============================================================================

def start_frame(
    session_id: Optional[str] = None,
    stream_sid: str = "MZ-stream-1",
    call_sid: str = "CA-call-1",
) -> dict:
    custom = {"sessionId": session_id} if session_id else {}
    return {
        "event": "start",
        "sequenceNumber": "1",
        "start": {
            "streamSid": stream_sid,
            "callSid": call_sid,
            "accountSid": "AC-test",
            "tracks": ["inbound"],
            "customParameters": custom,
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
        "streamSid": stream_sid,
    }


def media_frame(payload: str = "AAAA", stream_sid: str = "MZ-stream-1") -> dict:
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {"track": "inbound", "chunk": "1", "timestamp": "5", "payload": payload},
    }


def stop_frame(stream_sid: str = "MZ-stream-1") -> dict:
    return {"event": "stop", "streamSid": stream_sid, "stop": {"callSid": "CA-call-1"}}


SESSION_CREATED = {"type": "session.created", "event_id": "evt_1", "session": {"id": "sess_1"}}


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Yield to the event loop until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """
    Create test settings with safe defaults.

    Reporting is configured, but tests inject their own reporter or
    transport so nothing leaves the process.
    """
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        openai_api_key="sk-test",
        realtime_url="wss://realtime.test/v1/realtime",
        results_endpoint_url="https://collector.test/results",
        results_api_key="collector-key",
        session_grace_period_seconds=300.0,
        session_max_age_seconds=7200.0,
        session_sweep_interval_seconds=1800.0,
    )


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def registry() -> SessionRegistry:
    """Create a fresh session registry."""
    return SessionRegistry(
        default_prompt="You are a helpful assistant.",
        default_voice_id="alloy",
        default_language="he",
    )


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def lifecycle(registry: SessionRegistry, reporter: RecordingReporter) -> SessionLifecycleManager:
    """Lifecycle manager with a recording reporter (sweep not started)."""
    return SessionLifecycleManager(
        registry=registry,
        reporter=reporter,
        grace_period_seconds=300.0,
        max_age_seconds=7200.0,
        sweep_interval_seconds=1800.0,
    )


@pytest.fixture
def realtime_connector() -> FakeRealtimeConnector:
    """Realtime connector that acknowledges session creation immediately."""
    return FakeRealtimeConnector(events=[SESSION_CREATED])


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings: Settings, realtime_connector: FakeRealtimeConnector, reporter: RecordingReporter):
    """Create a FastAPI app instance wired to the fakes."""
    # Imported lazily so collection does not build the module-level app
    from main import create_app

    return create_app(
        settings=test_settings,
        realtime_connect=realtime_connector,
        results_reporter=reporter,
    )


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
