"""
Realtime Call Bridge - Session Registry

In-memory mapping from session ID to session record.
Safe for concurrent use by many call pairings and the background sweep.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional

from callbridge.core.exceptions import SessionNotFoundError
from callbridge.core.logging import mask_call_id, mask_session_id
from callbridge.core.types import Session, SessionId, utcnow

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    In-memory registry of call sessions.

    All access to the mapping goes through a single asyncio lock, so
    create/get/delete from concurrent calls and the sweep never observe
    a half-updated mapping.

    Usage:
        registry = SessionRegistry(default_prompt="You are a helpful assistant.")

        session_id = await registry.create(prompt="Be concise", external_call_id="c-1")
        session = await registry.get(session_id)
        await registry.delete(session_id)
    """

    def __init__(
        self,
        default_prompt: str = "You are a helpful assistant.",
        default_voice_id: str = "alloy",
        default_language: str = "he",
    ):
        """
        Initialize the session registry.

        Args:
            default_prompt: Prompt used when a session is created without one
            default_voice_id: Voice ID used when none is supplied
            default_language: Language used when none is supplied
        """
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._default_prompt = default_prompt
        self._default_voice_id = default_voice_id
        self._default_language = default_language

    async def create(
        self,
        prompt: Optional[str] = None,
        external_call_id: Optional[str] = None,
        contact_name: Optional[str] = None,
        voice_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> SessionId:
        """
        Create a new session, filling defaults for missing attributes.

        Returns:
            The freshly generated session ID
        """
        async with self._lock:
            session_id = self._generate_session_id()

            session = Session(
                id=session_id,
                prompt=prompt or self._default_prompt,
                external_call_id=external_call_id or None,
                contact_name=contact_name or "",
                voice_id=voice_id or self._default_voice_id,
                language=language or self._default_language,
            )

            self._sessions[session_id] = session

        logger.info(
            "Session created: session=%s, call=%s",
            mask_session_id(session_id),
            mask_call_id(external_call_id),
        )

        return session_id

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a session by ID, or None if it does not exist."""
        async with self._lock:
            return self._sessions.get(session_id)

    async def get_or_raise(self, session_id: str) -> Session:
        """Get a session by ID or raise if not found."""
        session = await self.get(session_id)
        if not session:
            raise SessionNotFoundError(
                f"Session not found: {mask_session_id(session_id)}",
                details={"session_id": mask_session_id(session_id)},
            )
        return session

    async def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if a session was removed, False if it was already gone
        """
        async with self._lock:
            removed = self._sessions.pop(session_id, None) is not None

        if removed:
            logger.debug("Session deleted: session=%s", mask_session_id(session_id))

        return removed

    async def attach(self, session_id: str, stream_sid: str) -> Optional[Session]:
        """
        Pair a session with a telephony stream.

        A session can be paired with at most one stream, and never once it
        has ended.

        Returns:
            The session if the pairing was made, None otherwise
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.ended:
                return None
            if session.active_stream_sid and session.active_stream_sid != stream_sid:
                logger.warning(
                    "Session already paired with another stream: session=%s",
                    mask_session_id(session_id),
                )
                return None
            session.active_stream_sid = stream_sid
            return session

    async def mark_ended(self, session_id: str) -> Optional[Session]:
        """
        Atomically flip a session's ended flag from False to True.

        Returns:
            The session if this call performed the transition, None if the
            session is missing or was already ended
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.ended:
                return None
            session.ended = True
            return session

    async def purge_older_than(
        self,
        max_age_seconds: float,
        now: Optional[datetime] = None,
    ) -> list[str]:
        """
        Delete every session older than max_age_seconds, ended or not.

        Returns:
            IDs of the removed sessions
        """
        now = now or utcnow()

        async with self._lock:
            stale_ids = [
                session_id
                for session_id, session in self._sessions.items()
                if session.age_seconds(now) > max_age_seconds
            ]
            for session_id in stale_ids:
                del self._sessions[session_id]

        return stale_ids

    async def count(self) -> int:
        """Number of sessions currently held."""
        async with self._lock:
            return len(self._sessions)

    async def clear(self) -> int:
        """Remove all sessions. Returns how many were removed."""
        async with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
        return count

    def _generate_session_id(self) -> SessionId:
        return SessionId(str(uuid.uuid4()))
