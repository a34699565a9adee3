from __future__ import annotations

from datetime import datetime

import structlog
from src.core.clock import Clock, SystemClock
from src.domain.errors import AlreadyFinalizedError, IncompleteSessionError
from src.domain.interfaces import AssignmentRegistry, ConcurrencyGuard, SessionStore
from src.domain.models import ActiveTestSession, AssignmentStatus, FinalizedResult
from src.domain.states import SessionEvent, transition

logger = structlog.get_logger()


async def release_once(guard: ConcurrencyGuard, session: ActiveTestSession) -> None:
    """Release the session's lock unless it was already released."""
    if session.lock_released:
        return
    await guard.release(session.student_id, session.test_type, session_id=session.session_id)
    session.lock_released = True


def build_result(
    session: ActiveTestSession,
    ended_at: datetime,
    *,
    partial: bool = False,
    min_answer_time_ms: int = 2000,
) -> FinalizedResult:
    fast_answers = sum(1 for a in session.answers if a.time_spent_ms < min_answer_time_ms)
    return FinalizedResult(
        session_id=session.session_id,
        state=session.state.value,
        answered_count=len(session.answers),
        question_count=session.definition.question_count,
        total_elapsed_seconds=(ended_at - session.started_at).total_seconds(),
        completed_at=ended_at,
        partial=partial,
        fast_answer_count=fast_answers,
    )


class CompletionFinalizer:
    """Closes a session: stamps completion, persists, releases the lock."""

    def __init__(
        self,
        store: SessionStore,
        registry: AssignmentRegistry,
        guard: ConcurrencyGuard,
        clock: Clock | None = None,
        *,
        min_answer_time_ms: int = 2000,
    ) -> None:
        self.store = store
        self.registry = registry
        self.guard = guard
        self.clock = clock or SystemClock()
        self.min_answer_time_ms = min_answer_time_ms

    async def finalize(self, session: ActiveTestSession, *, partial: bool = False) -> FinalizedResult:
        """
        Mark ``session`` completed and return its result.

        ``partial`` is only used by the timeout path, which completes a session
        with whatever answers were recorded.
        """
        if session.is_terminal or session.completed_at is not None:
            raise AlreadyFinalizedError(f"Session {session.session_id} already finalized")

        answered = len(session.answers)
        expected = session.definition.question_count
        if not partial and answered != expected:
            raise IncompleteSessionError(
                f"Session {session.session_id} has {answered} answers for {expected} questions"
            )

        event = SessionEvent.TIMEOUT_COMPLETE if partial else SessionEvent.LAST_ANSWER
        next_state = transition(session.state, event)

        now = self.clock.now()
        closed = await self.store.close_session(
            session.session_id, next_state, at=now, completed_at=now
        )
        if not closed:
            logger.info("session_already_closed", session_id=session.session_id)
            raise AlreadyFinalizedError(f"Session {session.session_id} already finalized")

        session.state = next_state
        session.completed_at = now
        session.last_activity_at = now

        await self.registry.mark_status(session.assignment_id, AssignmentStatus.COMPLETED, at=now)
        await release_once(self.guard, session)
        # Record the release so the reaper does not revisit this session
        await self.store.update_session(session)

        result = build_result(
            session, now, partial=partial, min_answer_time_ms=self.min_answer_time_ms
        )
        logger.info(
            "session_finalized",
            session_id=session.session_id,
            student_id=session.student_id,
            test_type=session.test_type,
            answered_count=answered,
            question_count=expected,
            partial=partial,
            fast_answer_count=result.fast_answer_count,
        )
        return result
