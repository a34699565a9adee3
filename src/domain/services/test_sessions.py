"""
Application service for test sessions.

Wires the lifecycle controller to the SQL repositories, commits one unit of
work per operation and runs the stale-session sweep used by the reaper job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.clock import Clock, SystemClock
from src.core.config import Settings, get_settings
from src.domain.errors import (
    AlreadyFinalizedError,
    SessionNotFoundError,
    SessionNotOwnedError,
)
from src.domain.interfaces import ConcurrencyGuard
from src.domain.models import (
    ActiveTestSession,
    AssignmentSummary,
    Question,
    StartResult,
    SubmitResult,
    TimeoutPolicy,
    VerifyResult,
)
from src.domain.services.lifecycle import SessionLifecycleController
from src.domain.services.tokens import TokenVerifier
from src.infrastructure.repositories.assignments import SqlAssignmentRegistry
from src.infrastructure.repositories.catalog import SqlTestCatalog
from src.infrastructure.repositories.sessions import SqlSessionStore

logger = structlog.get_logger()


@dataclass(slots=True)
class SessionView:
    session: ActiveTestSession
    current_question: Question | None
    remaining_seconds: float | None

    @property
    def answered_count(self) -> int:
        return len(self.session.answers)

    @property
    def question_count(self) -> int:
        return self.session.definition.question_count


@dataclass(slots=True)
class ReaperReport:
    timed_out: list[str] = field(default_factory=list)
    abandoned: list[str] = field(default_factory=list)
    released_locks: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "timed_out": len(self.timed_out),
            "abandoned": len(self.abandoned),
            "released_locks": len(self.released_locks),
        }


class TestSessionService:
    """Entry point used by the HTTP routes and the reaper job."""

    __test__ = False

    def __init__(
        self,
        session: AsyncSession,
        *,
        guard: ConcurrencyGuard,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.guard = guard
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.registry = SqlAssignmentRegistry(session)
        self.catalog = SqlTestCatalog(session)
        self.store = SqlSessionStore(session)
        self.verifier = TokenVerifier(self.registry, self.catalog, self.clock)

    def _dependencies(self) -> dict[str, Any]:
        return {
            "verifier": self.verifier,
            "guard": self.guard,
            "store": self.store,
            "registry": self.registry,
            "clock": self.clock,
            "timeout_policy": TimeoutPolicy(self.settings.timeout_policy),
            "min_answer_time_ms": self.settings.min_answer_time_ms,
        }

    def _controller(self) -> SessionLifecycleController:
        return SessionLifecycleController(**self._dependencies())

    async def _owned_controller(
        self, session_id: str, student_id: str
    ) -> SessionLifecycleController:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        if session.student_id != student_id:
            raise SessionNotOwnedError()
        return SessionLifecycleController.for_session(session, **self._dependencies())

    async def verify_token(self, token: str, test_type: str, *, student_id: str) -> VerifyResult:
        return await self._controller().verify(token, test_type, student_id=student_id)

    async def start_session(self, token: str, test_type: str, *, student_id: str) -> StartResult:
        controller = self._controller()
        verified = await controller.verify(token, test_type, student_id=student_id)
        if not verified.ok:
            return StartResult(error=verified.error)
        result = await controller.start()
        await self.session.commit()
        return result

    async def submit_answer(
        self,
        session_id: str,
        *,
        student_id: str,
        value: Any,
        question_id: str | None = None,
    ) -> SubmitResult:
        controller = await self._owned_controller(session_id, student_id)
        result = await controller.submit_answer(value, question_id=question_id)
        await self.session.commit()
        return result

    async def get_session_view(self, session_id: str, *, student_id: str) -> SessionView:
        controller = await self._owned_controller(session_id, student_id)
        # Reads also close a session whose time ran out while nobody was answering
        try:
            if await controller.enforce_time_limit() is not None:
                await self.session.commit()
        except AlreadyFinalizedError:
            controller = await self._owned_controller(session_id, student_id)
        assert controller.session is not None
        return SessionView(
            session=controller.session,
            current_question=controller.current_question(),
            remaining_seconds=controller.session.remaining_seconds(self.clock.now()),
        )

    async def abandon_session(self, session_id: str, *, student_id: str) -> ActiveTestSession:
        controller = await self._owned_controller(session_id, student_id)
        if controller.state.is_terminal:
            raise AlreadyFinalizedError(f"Session {session_id} is already {controller.state.value}")
        await controller.abandon("abandoned")
        await self.session.commit()
        assert controller.session is not None
        return controller.session

    async def get_assigned_tests(self, student_id: str) -> list[AssignmentSummary]:
        return await self.registry.list_for_student(student_id, now=self.clock.now())

    async def expire_stale_sessions(self) -> ReaperReport:
        """
        Sweep sessions nobody can interact with any more.

        Sessions past their time limit go through the timeout policy, sessions
        without a limit that sat idle past the inactivity timeout are abandoned,
        and locks whose session is no longer live are released once they are
        older than the grace period.
        """
        report = ReaperReport()
        now = self.clock.now()
        inactivity = timedelta(minutes=self.settings.inactivity_timeout_minutes)

        for session in await self.store.list_active_sessions():
            controller = SessionLifecycleController.for_session(session, **self._dependencies())
            try:
                if await controller.enforce_time_limit() is not None:
                    report.timed_out.append(session.session_id)
                elif session.deadline is None and now - session.last_activity_at >= inactivity:
                    await controller.abandon("inactive")
                    report.abandoned.append(session.session_id)
            except AlreadyFinalizedError:
                logger.info("sweep_skipped_closed_session", session_id=session.session_id)
        await self.session.commit()

        grace = timedelta(seconds=self.settings.orphan_lock_grace_seconds)
        for entry in await self.guard.entries():
            if now - entry.acquired_at < grace:
                continue
            if await self.store.is_live(entry.session_id):
                continue
            await self.guard.release(entry.student_id, entry.test_type, session_id=entry.session_id)
            report.released_locks.append(entry.session_id)
            logger.warning(
                "stale_lock_released",
                student_id=entry.student_id,
                test_type=entry.test_type,
                session_id=entry.session_id,
            )
        await self.session.commit()

        logger.info("stale_sessions_swept", **report.as_dict())
        return report
