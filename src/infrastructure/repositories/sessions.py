from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.core.clock import ensure_aware
from src.domain.errors import (
    AlreadyFinalizedError,
    ConcurrentSessionExistsError,
    QuestionAlreadyAnsweredError,
)
from src.domain.models import ActiveTestSession, Answer, TestDefinition
from src.domain.services.sequencer import QuestionSequencer
from src.domain.states import SessionState
from src.infrastructure.db.models import SessionAnswer, SessionStatus, TestSessionModel

logger = structlog.get_logger()

_STATE_TO_STATUS = {
    SessionState.IN_PROGRESS: SessionStatus.IN_PROGRESS,
    SessionState.COMPLETED: SessionStatus.COMPLETED,
    SessionState.FAILED: SessionStatus.FAILED,
}


class SqlSessionStore:
    """Persists sessions and their answers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_session(self, session: ActiveTestSession) -> None:
        self.session.add(
            TestSessionModel(
                id=session.session_id,
                assignment_id=session.assignment_id,
                student_id=session.student_id,
                test_type_slug=session.test_type,
                status=_STATE_TO_STATUS[session.state],
                definition=session.definition.to_dict(),
                current_index=session.current_index,
                started_at=session.started_at,
                question_started_at=session.question_started_at,
                last_activity_at=session.last_activity_at,
            )
        )
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Another request created the session for this assignment first
            await self.session.rollback()
            logger.warning(
                "session_create_conflict",
                assignment_id=session.assignment_id,
                session_id=session.session_id,
            )
            raise ConcurrentSessionExistsError() from exc

    async def get_session(self, session_id: str) -> ActiveTestSession | None:
        stmt = (
            select(TestSessionModel)
            .options(selectinload(TestSessionModel.answers))
            .execution_options(populate_existing=True)
            .where(TestSessionModel.id == session_id)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _to_domain(model) if model else None

    async def get_session_for_assignment(self, assignment_id: str) -> ActiveTestSession | None:
        stmt = (
            select(TestSessionModel)
            .options(selectinload(TestSessionModel.answers))
            .execution_options(populate_existing=True)
            .where(TestSessionModel.assignment_id == assignment_id)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _to_domain(model) if model else None

    async def update_session(self, session: ActiveTestSession) -> None:
        await self.session.execute(
            update(TestSessionModel)
            .where(TestSessionModel.id == session.session_id)
            .values(
                status=_STATE_TO_STATUS[session.state],
                current_index=session.current_index,
                question_started_at=session.question_started_at,
                last_activity_at=session.last_activity_at,
                completed_at=session.completed_at,
                failure_reason=session.failure_reason,
                lock_released=session.lock_released,
            )
        )

    async def close_session(
        self,
        session_id: str,
        state: SessionState,
        *,
        at: datetime,
        completed_at: datetime | None = None,
        failure_reason: str | None = None,
    ) -> bool:
        """Move a live session to ``state``; False when another actor closed it first."""
        result = await self.session.execute(
            update(TestSessionModel)
            .where(
                TestSessionModel.id == session_id,
                TestSessionModel.status == SessionStatus.IN_PROGRESS,
            )
            .values(
                status=_STATE_TO_STATUS[state],
                completed_at=completed_at,
                failure_reason=failure_reason,
                last_activity_at=at,
            )
        )
        return result.rowcount == 1

    async def append_answer(
        self,
        session: ActiveTestSession,
        answer: Answer,
        *,
        next_position: int,
        question_started_at: datetime,
    ) -> bool:
        self.session.add(
            SessionAnswer(
                session_id=session.session_id,
                question_id=answer.question_id,
                sequence=answer.sequence,
                value=answer.value,
                time_spent_ms=answer.time_spent_ms,
                recorded_at=answer.recorded_at,
            )
        )
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            stored = await self._stored_value(session.session_id, answer.question_id)
            if stored == answer.value:
                # A retry of the request that recorded this answer
                return False
            raise QuestionAlreadyAnsweredError(
                f"Question '{answer.question_id}' was answered concurrently"
            ) from exc

        result = await self.session.execute(
            update(TestSessionModel)
            .where(
                TestSessionModel.id == session.session_id,
                TestSessionModel.status == SessionStatus.IN_PROGRESS,
            )
            .values(
                current_index=next_position,
                question_started_at=question_started_at,
                last_activity_at=answer.recorded_at,
            )
        )
        if result.rowcount != 1:
            await self.session.rollback()
            raise AlreadyFinalizedError(f"Session {session.session_id} is no longer in progress")
        return True

    async def _stored_value(self, session_id: str, question_id: str) -> int | None:
        stmt = select(SessionAnswer.value).where(
            SessionAnswer.session_id == session_id, SessionAnswer.question_id == question_id
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_active_sessions(self) -> list[ActiveTestSession]:
        stmt = (
            select(TestSessionModel)
            .options(selectinload(TestSessionModel.answers))
            .execution_options(populate_existing=True)
            .where(TestSessionModel.status == SessionStatus.IN_PROGRESS)
            .order_by(TestSessionModel.started_at)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [_to_domain(row) for row in rows]

    async def completed_attempts(
        self, student_id: str, test_type: str
    ) -> tuple[int, datetime | None]:
        stmt = select(
            func.count(TestSessionModel.id), func.max(TestSessionModel.completed_at)
        ).where(
            TestSessionModel.student_id == student_id,
            TestSessionModel.test_type_slug == test_type,
            TestSessionModel.status == SessionStatus.COMPLETED,
        )
        count, last_completed_at = (await self.session.execute(stmt)).one()
        return int(count or 0), ensure_aware(last_completed_at) if last_completed_at else None

    async def is_live(self, session_id: str) -> bool:
        stmt = select(TestSessionModel.status).where(TestSessionModel.id == session_id)
        status = (await self.session.execute(stmt)).scalar_one_or_none()
        return status is SessionStatus.IN_PROGRESS


def _to_domain(model: TestSessionModel) -> ActiveTestSession:
    definition = TestDefinition.from_dict(model.definition)
    state = SessionState(model.status.value)
    return ActiveTestSession(
        session_id=model.id,
        assignment_id=model.assignment_id,
        student_id=model.student_id,
        test_type=model.test_type_slug,
        definition=definition,
        sequencer=QuestionSequencer(definition.questions, position=model.current_index),
        state=state,
        started_at=ensure_aware(model.started_at),
        question_started_at=ensure_aware(model.question_started_at),
        last_activity_at=ensure_aware(model.last_activity_at),
        answers=[
            Answer(
                question_id=row.question_id,
                sequence=row.sequence,
                value=row.value,
                time_spent_ms=row.time_spent_ms,
                recorded_at=ensure_aware(row.recorded_at),
            )
            for row in sorted(model.answers, key=lambda a: a.sequence)
        ],
        completed_at=ensure_aware(model.completed_at) if model.completed_at else None,
        failure_reason=model.failure_reason,
        lock_released=model.lock_released,
    )
