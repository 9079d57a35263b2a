"""
Realtime Call Bridge - Session Lifecycle Manager

End-of-call processing and session garbage collection:
- finalize(): idempotent call finalization and results reporting
- grace-period deletion of finalized sessions
- periodic sweep of sessions older than the hard maximum age

Finalize may be triggered by both the telephony stop event and the
connection close; the registry's atomic ended-flag transition guarantees
that only the first caller reports.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, Set

from callbridge.config import Settings
from callbridge.core.logging import get_logger, mask_session_id
from callbridge.core.types import CallResult, EndedReason, SessionId, whole_seconds
from callbridge.telephony.session_store import SessionRegistry

logger = get_logger(__name__)


class CallResultsReporter(Protocol):
    """Delivers call results to an external collector. Must not raise."""

    async def report(self, result: CallResult) -> bool:
        ...


class SessionLifecycleManager:
    """
    Finalizes calls and evicts sessions.

    Usage:
        lifecycle = SessionLifecycleManager(registry, reporter=reporter)
        await lifecycle.start()

        await lifecycle.finalize(session_id, call_sid)

        await lifecycle.stop()
    """

    def __init__(
        self,
        registry: SessionRegistry,
        reporter: Optional[CallResultsReporter] = None,
        grace_period_seconds: float = 300.0,
        max_age_seconds: float = 7200.0,
        sweep_interval_seconds: float = 1800.0,
    ):
        """
        Args:
            registry: Session registry to finalize and evict from
            reporter: Results reporter (None disables reporting)
            grace_period_seconds: Delay between finalize and deletion
            max_age_seconds: Sessions older than this are swept regardless of state
            sweep_interval_seconds: Interval between sweeps
        """
        self._registry = registry
        self._reporter = reporter
        self._grace_period = grace_period_seconds
        self._max_age = max_age_seconds
        self._sweep_interval = sweep_interval_seconds

        self._sweep_task: Optional[asyncio.Task] = None
        self._report_tasks: Set[asyncio.Task] = set()
        self._deletion_tasks: Set[asyncio.Task] = set()
        self._started = False

    @classmethod
    def from_settings(
        cls,
        registry: SessionRegistry,
        settings: Settings,
        reporter: Optional[CallResultsReporter] = None,
    ) -> "SessionLifecycleManager":
        return cls(
            registry=registry,
            reporter=reporter,
            grace_period_seconds=settings.session_grace_period_seconds,
            max_age_seconds=settings.session_max_age_seconds,
            sweep_interval_seconds=settings.session_sweep_interval_seconds,
        )

    # =========================================================================
    # Start / Stop
    # =========================================================================

    async def start(self) -> None:
        """Start the background sweep."""
        if self._started:
            return

        self._sweep_task = asyncio.create_task(self._sweep_loop())
        self._started = True

        logger.info(
            "Session lifecycle started",
            data={
                "grace_period_seconds": self._grace_period,
                "max_age_seconds": self._max_age,
                "sweep_interval_seconds": self._sweep_interval,
            },
        )

    async def stop(self) -> None:
        """
        Stop background work.

        In-flight reports are awaited; pending grace-period deletions are
        cancelled.
        """
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        await self.wait_for_reports()

        for task in list(self._deletion_tasks):
            task.cancel()
        if self._deletion_tasks:
            await asyncio.gather(*self._deletion_tasks, return_exceptions=True)

        self._started = False
        logger.info("Session lifecycle stopped")

    # =========================================================================
    # Finalize
    # =========================================================================

    async def finalize(
        self,
        session_id: Optional[str],
        call_sid: Optional[str] = None,
        reason: EndedReason = EndedReason.CALL_ENDED,
    ) -> Optional[CallResult]:
        """
        Finalize a call exactly once.

        No-op if the session is missing or already ended. Otherwise marks it
        ended, computes the result, starts a best-effort report (when a
        reporter is configured and the session has an external call ID) and
        schedules deletion after the grace period.

        Returns:
            The CallResult if this invocation finalized the session, else None
        """
        if not session_id:
            return None

        session = await self._registry.mark_ended(session_id)
        if session is None:
            logger.debug(
                "Finalize skipped (missing or already ended)",
                data={"session_id": mask_session_id(session_id)},
            )
            return None

        result = CallResult(
            session_id=SessionId(session.id),
            call_id=session.external_call_id,
            call_sid=call_sid,
            transcript=session.render_transcript(),
            duration=whole_seconds(session.age_seconds()),
            ended_reason=reason,
        )

        logger.info(
            "Call ended",
            data={
                "duration": result.duration,
                "transcript_entries": len(session.transcript),
                "transcript_length": len(result.transcript),
            },
        )

        if self._reporter is not None and session.external_call_id:
            self._track(self._report_tasks, self._report(result))

        self._track(self._deletion_tasks, self._delete_after(session.id, self._grace_period))

        return result

    async def wait_for_reports(self) -> None:
        """Wait until every in-flight results report has completed."""
        while self._report_tasks:
            await asyncio.gather(*list(self._report_tasks), return_exceptions=True)

    async def _report(self, result: CallResult) -> None:
        try:
            await self._reporter.report(result)
        except Exception as e:
            logger.error("Results reporter raised", data={"error": str(e)})

    async def _delete_after(self, session_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if await self._registry.delete(session_id):
            logger.debug(
                "Finalized session evicted",
                data={"session_id": mask_session_id(session_id)},
            )

    @staticmethod
    def _track(tasks: Set[asyncio.Task], coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        return task

    # =========================================================================
    # Sweep
    # =========================================================================

    async def sweep(self) -> int:
        """
        Delete every session older than the maximum age, ended or not.

        Returns:
            Number of sessions removed
        """
        removed = await self._registry.purge_older_than(self._max_age)
        if removed:
            logger.info("Swept stale sessions", data={"count": len(removed)})
        return len(removed)

    async def _sweep_loop(self) -> None:
        """Background task to evict sessions past the maximum age."""
        while True:
            try:
                await asyncio.sleep(self._sweep_interval)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in sweep loop", data={"error": str(e)})
