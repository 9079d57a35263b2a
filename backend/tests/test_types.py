"""
Realtime Call Bridge - Domain Type Tests

Run with: pytest backend/tests/test_types.py -v
"""

from callbridge.core.types import (
    CallResult,
    EndedReason,
    Role,
    Session,
    SessionId,
    TranscriptEntry,
    render_transcript,
    whole_seconds,
)


class TestTranscript:

    def test_entries_keep_arrival_order(self):
        session = Session(id=SessionId("s-1"), prompt="p", language="en")

        session.add_transcript(Role.AGENT, "one")
        session.add_transcript(Role.USER, "two")
        session.add_transcript(Role.AGENT, "three")

        assert [e.text for e in session.transcript] == ["one", "two", "three"]
        assert [e.role for e in session.transcript] == [Role.AGENT, Role.USER, Role.AGENT]

    def test_render_uses_locale_labels(self):
        entries = [TranscriptEntry(Role.AGENT, "Hi"), TranscriptEntry(Role.USER, "Hello")]

        assert render_transcript(entries, "en") == "Agent: Hi\nCustomer: Hello"
        assert render_transcript(entries, "he") == "סוכן: Hi\nלקוח: Hello"

    def test_unknown_language_falls_back_to_english(self):
        entries = [TranscriptEntry(Role.USER, "Bonjour")]

        assert render_transcript(entries, "fr") == "Customer: Bonjour"
        assert render_transcript(entries, None) == "Customer: Bonjour"

    def test_empty_transcript_renders_empty(self):
        assert render_transcript([], "he") == ""

    def test_whole_seconds_rounds_half_up(self):
        assert whole_seconds(2.5) == 3
        assert whole_seconds(2.49) == 2
        assert whole_seconds(0.5) == 1
        assert whole_seconds(-0.2) == 0


class TestCallResult:

    def test_payload_shape(self):
        result = CallResult(
            session_id=SessionId("s-1"),
            call_id="c-1",
            call_sid="CA-1",
            transcript="Agent: Hi",
            duration=12,
        )

        assert result.to_payload("openai-realtime-end") == {
            "type": "openai-realtime-end",
            "callId": "c-1",
            "callSid": "CA-1",
            "transcript": "Agent: Hi",
            "duration": 12,
            "endedReason": "call_ended",
        }
        assert result.ended_reason == EndedReason.CALL_ENDED
