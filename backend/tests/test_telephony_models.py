"""
Realtime Call Bridge - Telephony Wire Model Tests

Tests for parsing inbound media-stream frames and serializing outbound
frames.

Run with: pytest backend/tests/test_telephony_models.py -v
"""

import json

import pytest

from callbridge.core.exceptions import InvalidMessageError
from callbridge.telephony.models import (
    ClearMessage,
    ConnectedMessage,
    MediaMessage,
    OutgoingMediaMessage,
    StartMessage,
    StopMessage,
    StreamEvent,
    parse_stream_message,
)
from conftest import media_frame, start_frame, stop_frame


class TestParseInbound:

    def test_connected(self):
        message = parse_stream_message('{"event": "connected", "protocol": "Call", "version": "1.0.0"}')

        assert isinstance(message, ConnectedMessage)

    def test_start(self):
        message = parse_stream_message(json.dumps(start_frame("sess-1")))

        assert isinstance(message, StartMessage)
        assert message.start.stream_sid == "MZ-stream-1"
        assert message.start.call_sid == "CA-call-1"
        assert message.start.custom_parameter("sessionId") == "sess-1"

    def test_start_without_custom_parameters(self):
        message = parse_stream_message(json.dumps(start_frame()))

        assert message.start.custom_parameter("sessionId") is None

    def test_media(self):
        message = parse_stream_message(json.dumps(media_frame("dGVzdA==")))

        assert isinstance(message, MediaMessage)
        assert message.media.payload == "dGVzdA=="

    def test_stop(self):
        assert isinstance(parse_stream_message(json.dumps(stop_frame())), StopMessage)

    @pytest.mark.parametrize("event", ["mark", "dtmf"])
    def test_unhandled_events_return_none(self, event):
        assert parse_stream_message(json.dumps({"event": event, "streamSid": "MZ"})) is None

    @pytest.mark.parametrize("event", ["mark", "dtmf", "clear"])
    def test_unhandled_events_are_not_stream_events(self, event):
        assert event not in {member.value for member in StreamEvent}

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[1, 2, 3]",
            '{"streamSid": "MZ"}',
            '{"event": "media", "media": {}}',
            '{"event": "start", "start": {"callSid": "CA"}}',
        ],
    )
    def test_malformed_frames_raise(self, text):
        with pytest.raises(InvalidMessageError):
            parse_stream_message(text)


class TestOutbound:

    def test_media_frame_is_tagged_with_stream(self):
        data = json.loads(OutgoingMediaMessage.for_stream("MZ-1", "AAAA").to_json())

        assert data == {"event": "media", "streamSid": "MZ-1", "media": {"payload": "AAAA"}}

    def test_clear_frame(self):
        data = json.loads(ClearMessage(stream_sid="MZ-1").to_json())

        assert data == {"event": "clear", "streamSid": "MZ-1"}
