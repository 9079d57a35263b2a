"""
Realtime Call Bridge - Session Registry Tests

Tests for SessionRegistry.
These tests verify:
- Defaults applied on create
- Stream pairing rules
- Atomic ended-flag transition
- Age-based purge

Run with: pytest backend/tests/test_session_store.py -v
"""

import asyncio
from datetime import timedelta

import pytest

from callbridge.core.exceptions import SessionNotFoundError
from callbridge.core.types import utcnow
from callbridge.telephony.session_store import SessionRegistry


class TestCreate:
    """Tests for session creation."""

    @pytest.mark.asyncio
    async def test_create_applies_defaults(self, registry: SessionRegistry):
        """Missing attributes should be filled with the configured defaults."""
        session_id = await registry.create()

        session = await registry.get(session_id)
        assert session is not None
        assert session.prompt == "You are a helpful assistant."
        assert session.voice_id == "alloy"
        assert session.language == "he"
        assert session.contact_name == ""
        assert session.external_call_id is None
        assert session.ended is False
        assert session.transcript == []

    @pytest.mark.asyncio
    async def test_create_keeps_supplied_attributes(self, registry: SessionRegistry):
        session_id = await registry.create(
            prompt="Be concise",
            external_call_id="c-1",
            contact_name="Dana",
            voice_id="verse",
            language="en",
        )

        session = await registry.get(session_id)
        assert session.prompt == "Be concise"
        assert session.external_call_id == "c-1"
        assert session.contact_name == "Dana"
        assert session.voice_id == "verse"
        assert session.language == "en"

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, registry: SessionRegistry):
        """Concurrent creates should never collide."""
        ids = await asyncio.gather(*(registry.create() for _ in range(50)))

        assert len(set(ids)) == 50
        assert await registry.count() == 50


class TestLookup:

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, registry: SessionRegistry):
        assert await registry.get("nope") is None

    @pytest.mark.asyncio
    async def test_get_or_raise_missing(self, registry: SessionRegistry):
        with pytest.raises(SessionNotFoundError) as exc_info:
            await registry.get_or_raise("nope")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, registry: SessionRegistry):
        session_id = await registry.create()

        assert await registry.delete(session_id) is True
        assert await registry.get(session_id) is None
        assert await registry.delete(session_id) is False


class TestAttach:
    """Tests for pairing a session with a telephony stream."""

    @pytest.mark.asyncio
    async def test_attach_sets_active_stream(self, registry: SessionRegistry):
        session_id = await registry.create()

        session = await registry.attach(session_id, "MZ-1")

        assert session is not None
        assert session.active_stream_sid == "MZ-1"

    @pytest.mark.asyncio
    async def test_attach_missing_session(self, registry: SessionRegistry):
        assert await registry.attach("nope", "MZ-1") is None

    @pytest.mark.asyncio
    async def test_second_stream_is_refused(self, registry: SessionRegistry):
        """A session is paired with at most one stream at a time."""
        session_id = await registry.create()
        await registry.attach(session_id, "MZ-1")

        assert await registry.attach(session_id, "MZ-2") is None
        assert await registry.attach(session_id, "MZ-1") is not None

    @pytest.mark.asyncio
    async def test_ended_session_is_refused(self, registry: SessionRegistry):
        session_id = await registry.create()
        await registry.mark_ended(session_id)

        assert await registry.attach(session_id, "MZ-1") is None


class TestMarkEnded:

    @pytest.mark.asyncio
    async def test_transition_happens_once(self, registry: SessionRegistry):
        session_id = await registry.create()

        first = await registry.mark_ended(session_id)
        second = await registry.mark_ended(session_id)

        assert first is not None and first.ended is True
        assert second is None

    @pytest.mark.asyncio
    async def test_concurrent_transitions(self, registry: SessionRegistry):
        """Exactly one of many concurrent callers should win."""
        session_id = await registry.create()

        results = await asyncio.gather(*(registry.mark_ended(session_id) for _ in range(10)))

        assert sum(1 for r in results if r is not None) == 1


class TestPurge:
    """Tests for age-based eviction."""

    @pytest.mark.asyncio
    async def test_purges_only_sessions_past_max_age(self, registry: SessionRegistry):
        old_id = await registry.create()
        new_id = await registry.create()
        (await registry.get(old_id)).created_at = utcnow() - timedelta(hours=3)

        removed = await registry.purge_older_than(7200)

        assert removed == [old_id]
        assert await registry.get(old_id) is None
        assert await registry.get(new_id) is not None

    @pytest.mark.asyncio
    async def test_purge_ignores_ended_flag(self, registry: SessionRegistry):
        """Both ended and never-started sessions are evicted once too old."""
        ended_id = await registry.create()
        idle_id = await registry.create()
        await registry.mark_ended(ended_id)

        later = utcnow() + timedelta(hours=3)
        removed = await registry.purge_older_than(7200, now=later)

        assert sorted(removed) == sorted([ended_id, idle_id])
        assert await registry.count() == 0

    @pytest.mark.asyncio
    async def test_clear(self, registry: SessionRegistry):
        await registry.create()
        await registry.create()

        assert await registry.clear() == 2
        assert await registry.count() == 0
