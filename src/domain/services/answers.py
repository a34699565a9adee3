"""Validation and recording of a single answer."""

from __future__ import annotations

from typing import Any

import structlog
from src.core.clock import Clock, SystemClock
from src.domain.errors import (
    AlreadyFinalizedError,
    InvalidAnswerValueError,
    QuestionAlreadyAnsweredError,
    WrongQuestionError,
)
from src.domain.interfaces import SessionStore
from src.domain.models import ActiveTestSession, Answer, FinalizedResult, SubmitResult
from src.domain.services.finalizer import CompletionFinalizer
from src.domain.states import SessionEvent, transition

logger = structlog.get_logger()


class AnswerSubmissionPipeline:
    """
    Records one answer against the current question and advances the cursor.

    Nothing on the session is mutated until the store has accepted the answer,
    so a rejected or failed submission leaves the session untouched. The last
    answer finalizes the session before ``submit`` returns.
    """

    def __init__(
        self,
        store: SessionStore,
        finalizer: CompletionFinalizer,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.finalizer = finalizer
        self.clock = clock or SystemClock()

    async def submit(
        self,
        session: ActiveTestSession,
        value: Any,
        *,
        question_id: str | None = None,
    ) -> SubmitResult:
        if question_id is not None:
            replay = self._check_replay(session, question_id, value)
            if replay is not None:
                return replay

        if session.is_terminal:
            raise AlreadyFinalizedError(f"Session {session.session_id} is {session.state.value}")

        # Validates the state before touching the cursor
        transition(session.state, SessionEvent.ANSWER)

        question = session.sequencer.current()
        if question_id is not None and question_id != question.question_id:
            raise WrongQuestionError(
                f"Expected answer for question '{question.question_id}', got '{question_id}'"
            )
        if not question.scale.accepts(value):
            raise InvalidAnswerValueError(
                f"Value {value!r} outside {question.scale.minimum}..{question.scale.maximum}"
            )

        now = self.clock.now()
        spent_ms = max(0, int((now - session.question_started_at).total_seconds() * 1000))
        answer = Answer(
            question_id=question.question_id,
            sequence=session.current_index,
            value=value,
            time_spent_ms=spent_ms,
            recorded_at=now,
        )
        stored = await self.store.append_answer(
            session,
            answer,
            next_position=session.current_index + 1,
            question_started_at=now,
        )
        if not stored:
            # A concurrent identical request recorded this answer first
            logger.info(
                "answer_replayed", session_id=session.session_id, question_id=question.question_id
            )
            return SubmitResult(
                accepted=True,
                is_last_question=answer.sequence == session.definition.question_count - 1,
                replayed=True,
            )

        session.answers.append(answer)
        session.sequencer.advance()
        session.question_started_at = now
        session.last_activity_at = now

        logger.info(
            "answer_recorded",
            session_id=session.session_id,
            question_id=question.question_id,
            sequence=answer.sequence,
            time_spent_ms=spent_ms,
        )

        if session.sequencer.has_next():
            return SubmitResult(accepted=True, is_last_question=False)

        finalized: FinalizedResult = await self.finalizer.finalize(session)
        return SubmitResult(accepted=True, is_last_question=True, finalized=finalized)

    def _check_replay(
        self, session: ActiveTestSession, question_id: str, value: Any
    ) -> SubmitResult | None:
        recorded = session.answer_for(question_id)
        if recorded is None:
            return None
        if recorded.value != value or isinstance(value, bool):
            logger.warning(
                "answer_conflict",
                session_id=session.session_id,
                question_id=question_id,
                recorded_value=recorded.value,
                submitted_value=value,
            )
            raise QuestionAlreadyAnsweredError(
                f"Question '{question_id}' already answered with {recorded.value}"
            )
        is_last = recorded.sequence == session.definition.question_count - 1
        logger.info("answer_replayed", session_id=session.session_id, question_id=question_id)
        return SubmitResult(
            accepted=True,
            is_last_question=is_last,
            replayed=True,
        )
