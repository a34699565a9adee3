"""
Session lifecycle controller.

Drives one test-taking attempt through
``uninitialized -> verifying -> intro -> in_progress -> completed`` with the
absorbing ``failed`` state. Engine errors are converted into typed results at
this boundary; infrastructure errors propagate.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import structlog
from src.core.clock import Clock, SystemClock
from src.core.logging import token_prefix
from src.domain.errors import (
    AlreadyFinalizedError,
    AttemptsExhaustedError,
    ConcurrentSessionExistsError,
    CooldownActiveError,
    EngineError,
    IllegalTransitionError,
    SessionTimedOutError,
)
from src.domain.interfaces import AssignmentRegistry, ConcurrencyGuard, SessionStore
from src.domain.models import (
    ActiveTestSession,
    Assignment,
    AssignmentStatus,
    FinalizedResult,
    Question,
    StartResult,
    SubmitResult,
    TestDefinition,
    TimeoutPolicy,
    VerifyResult,
)
from src.domain.services.answers import AnswerSubmissionPipeline
from src.domain.services.finalizer import CompletionFinalizer, build_result, release_once
from src.domain.services.sequencer import QuestionSequencer
from src.domain.services.tokens import TokenVerifier
from src.domain.states import SessionEvent, SessionState, transition

logger = structlog.get_logger()


class SessionLifecycleController:
    """State machine for a single test session.

    A controller is cheap to build: the application service creates one per
    request, either fresh (verify then start) or from a stored session via
    ``for_session``.
    """

    def __init__(
        self,
        *,
        verifier: TokenVerifier,
        guard: ConcurrencyGuard,
        store: SessionStore,
        registry: AssignmentRegistry,
        clock: Clock | None = None,
        timeout_policy: TimeoutPolicy = TimeoutPolicy.COMPLETE,
        min_answer_time_ms: int = 2000,
    ) -> None:
        self.verifier = verifier
        self.guard = guard
        self.store = store
        self.registry = registry
        self.clock = clock or SystemClock()
        self.timeout_policy = TimeoutPolicy(timeout_policy)
        self.min_answer_time_ms = min_answer_time_ms
        self.finalizer = CompletionFinalizer(
            store, registry, guard, self.clock, min_answer_time_ms=min_answer_time_ms
        )
        self.pipeline = AnswerSubmissionPipeline(store, self.finalizer, self.clock)

        self.state = SessionState.UNINITIALIZED
        self.assignment: Assignment | None = None
        self.definition: TestDefinition | None = None
        self.session: ActiveTestSession | None = None
        self.last_error: EngineError | None = None

    @classmethod
    def for_session(
        cls, session: ActiveTestSession, **dependencies
    ) -> SessionLifecycleController:
        controller = cls(**dependencies)
        controller.session = session
        controller.definition = session.definition
        controller.state = session.state
        return controller

    def _apply(self, event: SessionEvent) -> SessionState:
        self.state = transition(self.state, event)
        if self.session is not None:
            self.session.state = self.state
        return self.state

    # Verification

    async def verify(
        self, token: str, test_type: str, *, student_id: str | None = None
    ) -> VerifyResult:
        self._apply(SessionEvent.VERIFY)
        try:
            resolved = await self.verifier.resolve(token, test_type, student_id=student_id)
        except EngineError as exc:
            self.last_error = exc
            self._apply(SessionEvent.VERIFICATION_FAILED)
            logger.info(
                "token_rejected",
                token=token_prefix(token),
                test_type=test_type,
                code=exc.code,
            )
            return VerifyResult(error=exc)

        self.assignment = resolved.assignment
        self.definition = resolved.definition
        self._apply(SessionEvent.VERIFIED)
        return VerifyResult(definition=resolved.definition)

    # Start

    async def start(self) -> StartResult:
        if self.state is SessionState.IN_PROGRESS and self.session is not None:
            return StartResult(session=self.session, resumed=True)
        try:
            return await self._start()
        except EngineError as exc:
            self.last_error = exc
            logger.info(
                "session_start_refused",
                code=exc.code,
                student_id=self.assignment.student_id if self.assignment else None,
                state=self.state.value,
            )
            return StartResult(error=exc)

    async def _start(self) -> StartResult:
        if self.state is not SessionState.INTRO:
            raise IllegalTransitionError(f"Cannot start a session in state '{self.state.value}'")
        assert self.assignment is not None and self.definition is not None
        assignment = self.assignment

        existing = await self.store.get_session_for_assignment(assignment.assignment_id)
        if existing is not None and not existing.is_terminal:
            return await self._resume(existing)

        await self._check_attempts(assignment, self.definition)

        session_id = str(uuid.uuid4())
        acquired = await self.guard.try_acquire(
            assignment.student_id, assignment.test_type, session_id=session_id
        )
        if not acquired:
            holder = await self.guard.holder(assignment.student_id, assignment.test_type)
            logger.info(
                "concurrent_session_refused",
                student_id=assignment.student_id,
                test_type=assignment.test_type,
                holder_session_id=holder,
            )
            raise ConcurrentSessionExistsError(holder_session_id=holder)

        now = self.clock.now()
        session = ActiveTestSession(
            session_id=session_id,
            assignment_id=assignment.assignment_id,
            student_id=assignment.student_id,
            test_type=assignment.test_type,
            definition=self.definition,
            sequencer=QuestionSequencer(self.definition.questions),
            state=transition(self.state, SessionEvent.START),
            started_at=now,
            question_started_at=now,
            last_activity_at=now,
        )
        try:
            await self.store.create_session(session)
            await self.registry.mark_status(
                assignment.assignment_id, AssignmentStatus.IN_PROGRESS, at=now
            )
        except Exception:
            await self.guard.release(
                assignment.student_id, assignment.test_type, session_id=session_id
            )
            raise

        self.session = session
        self._apply(SessionEvent.START)
        logger.info(
            "session_started",
            session_id=session_id,
            student_id=assignment.student_id,
            test_type=assignment.test_type,
            question_count=self.definition.question_count,
        )
        return StartResult(session=session)

    async def _resume(self, existing: ActiveTestSession) -> StartResult:
        acquired = await self.guard.try_acquire(
            existing.student_id, existing.test_type, session_id=existing.session_id
        )
        if not acquired:
            holder = await self.guard.holder(existing.student_id, existing.test_type)
            raise ConcurrentSessionExistsError(holder_session_id=holder)
        self.session = existing
        self.state = existing.state
        logger.info("session_resumed", session_id=existing.session_id)
        return StartResult(session=existing, resumed=True)

    async def _check_attempts(self, assignment: Assignment, definition: TestDefinition) -> None:
        config = definition.configuration
        if config.max_attempts is None and config.cooldown_hours is None:
            return
        completed, last_completed_at = await self.store.completed_attempts(
            assignment.student_id, assignment.test_type
        )
        if config.max_attempts is not None and completed >= config.max_attempts:
            raise AttemptsExhaustedError(
                f"Maximum attempts ({config.max_attempts}) reached for {assignment.test_type}"
            )
        if config.cooldown_hours and last_completed_at is not None:
            available_at = last_completed_at + timedelta(hours=config.cooldown_hours)
            if self.clock.now() < available_at:
                raise CooldownActiveError(
                    f"Test available again at {available_at.isoformat()}",
                    available_at=available_at,
                )

    # Answers

    async def submit_answer(self, value, *, question_id: str | None = None) -> SubmitResult:
        if self.session is None:
            return SubmitResult(
                accepted=False,
                error=IllegalTransitionError("No session has been started"),
            )

        try:
            timed_out = await self.enforce_time_limit()
            if timed_out is not None:
                return SubmitResult(
                    accepted=False,
                    finalized=timed_out,
                    error=SessionTimedOutError(),
                )
            result = await self.pipeline.submit(self.session, value, question_id=question_id)
        except EngineError as exc:
            self.last_error = exc
            if exc.category == "consistency":
                logger.warning(
                    "answer_rejected",
                    session_id=self.session.session_id,
                    code=exc.code,
                )
            return SubmitResult(accepted=False, error=exc)

        self.state = self.session.state
        if result.accepted and not self.session.is_terminal:
            # Keeps an expiring lock alive while the student is still answering
            await self.guard.refresh(
                self.session.student_id, self.session.test_type, session_id=self.session.session_id
            )
        return result

    def current_question(self) -> Question | None:
        if self.session is None or self.state is not SessionState.IN_PROGRESS:
            return None
        if not self.session.sequencer.has_next():
            return None
        return self.session.sequencer.current()

    # Timeout and abandonment

    async def enforce_time_limit(self) -> FinalizedResult | None:
        """Apply the timeout policy when the session is past its deadline."""
        session = self.session
        if session is None or session.is_terminal:
            return None
        deadline = session.deadline
        now = self.clock.now()
        if deadline is None or now < deadline:
            return None

        logger.info(
            "session_timed_out",
            session_id=session.session_id,
            policy=self.timeout_policy.value,
            answered_count=len(session.answers),
        )
        if self.timeout_policy is TimeoutPolicy.COMPLETE:
            result = await self.finalizer.finalize(session, partial=True)
        else:
            await self._fail(session, SessionEvent.TIMEOUT_FAIL, "timed_out")
            result = build_result(
                session, now, partial=True, min_answer_time_ms=self.min_answer_time_ms
            )
        self.state = session.state
        return result

    async def abandon(self, reason: str = "abandoned") -> SessionState:
        if self.state.is_terminal:
            return self.state
        if self.session is None:
            self._apply(SessionEvent.ABANDON)
            return self.state
        await self._fail(self.session, SessionEvent.ABANDON, reason)
        self.state = self.session.state
        return self.state

    async def _fail(self, session: ActiveTestSession, event: SessionEvent, reason: str) -> None:
        now = self.clock.now()
        next_state = transition(session.state, event)
        closed = await self.store.close_session(
            session.session_id, next_state, at=now, failure_reason=reason
        )
        if not closed:
            logger.info("session_already_closed", session_id=session.session_id)
            raise AlreadyFinalizedError(f"Session {session.session_id} already finalized")

        session.state = next_state
        session.failure_reason = reason
        session.last_activity_at = now

        await self.registry.mark_status(session.assignment_id, AssignmentStatus.FAILED, at=now)
        await release_once(self.guard, session)
        await self.store.update_session(session)
        logger.info(
            "session_failed",
            session_id=session.session_id,
            student_id=session.student_id,
            test_type=session.test_type,
            reason=reason,
        )
