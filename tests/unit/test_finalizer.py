from __future__ import annotations

from datetime import timedelta

import pytest
from src.domain.errors import AlreadyFinalizedError, IncompleteSessionError
from src.domain.models import ActiveTestSession, Answer, AssignmentStatus
from src.domain.services.concurrency import InMemoryConcurrencyGuard
from src.domain.services.finalizer import CompletionFinalizer, build_result
from src.domain.services.sequencer import QuestionSequencer
from src.domain.states import SessionState

from tests.utils import make_assignment, make_definition


class CountingGuard(InMemoryConcurrencyGuard):
    def __init__(self, clock) -> None:
        super().__init__(clock)
        self.release_calls = 0

    async def release(self, student_id, test_type, *, session_id=None) -> None:
        self.release_calls += 1
        await super().release(student_id, test_type, session_id=session_id)


async def _open_session(harness, guard, *, answered: int) -> ActiveTestSession:
    assignment = harness.registry.add(make_assignment(assigned_at=harness.clock.now()))
    definition = make_definition()
    started = harness.clock.now()
    session = ActiveTestSession(
        session_id="sess-1",
        assignment_id=assignment.assignment_id,
        student_id=assignment.student_id,
        test_type="CSI",
        definition=definition,
        sequencer=QuestionSequencer(definition.questions, position=answered),
        state=SessionState.IN_PROGRESS,
        started_at=started,
        question_started_at=started,
        last_activity_at=started,
        answers=[
            Answer(
                question_id=question.question_id,
                sequence=index,
                value=3,
                time_spent_ms=1000 if index == 0 else 4000,
                recorded_at=started,
            )
            for index, question in enumerate(definition.questions[:answered])
        ],
    )
    await harness.store.create_session(session)
    await guard.try_acquire("S1", "CSI", session_id="sess-1")
    return session


@pytest.fixture()
def guard(clock) -> CountingGuard:
    return CountingGuard(clock)


@pytest.fixture()
def finalizer(harness, guard) -> CompletionFinalizer:
    return CompletionFinalizer(harness.store, harness.registry, guard, harness.clock)


class TestCompletionFinalizer:
    @pytest.mark.asyncio
    async def test_completes_session_and_releases_lock(self, harness, guard, finalizer) -> None:
        session = await _open_session(harness, guard, answered=3)
        harness.clock.advance(minutes=4)

        result = await finalizer.finalize(session)

        assert result.state == "completed"
        assert result.answered_count == result.question_count == 3
        assert result.total_elapsed_seconds == 240
        assert result.fast_answer_count == 1
        assert not result.partial
        assert await guard.holder("S1", "CSI") is None
        stored = await harness.store.get_session("sess-1")
        assert stored.state is SessionState.COMPLETED
        assert stored.completed_at == harness.clock.now()
        assert stored.lock_released is True
        assert harness.registry.assignments[session.assignment_id].status is AssignmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_second_finalize_is_rejected_without_releasing_again(
        self, harness, guard, finalizer
    ) -> None:
        session = await _open_session(harness, guard, answered=3)
        await finalizer.finalize(session)

        with pytest.raises(AlreadyFinalizedError):
            await finalizer.finalize(session)

        assert guard.release_calls == 1

    @pytest.mark.asyncio
    async def test_stale_copy_cannot_finalize_a_closed_session(
        self, harness, guard, finalizer
    ) -> None:
        session = await _open_session(harness, guard, answered=3)
        stale = await harness.store.get_session("sess-1")
        await finalizer.finalize(session)
        first_stamp = harness.clock.now()
        harness.clock.advance(minutes=1)

        with pytest.raises(AlreadyFinalizedError):
            await finalizer.finalize(stale, partial=True)

        assert guard.release_calls == 1
        assert stale.state is SessionState.IN_PROGRESS
        assert (await harness.store.get_session("sess-1")).completed_at == first_stamp
        assert harness.registry.status_history == [(session.assignment_id, AssignmentStatus.COMPLETED)]

    @pytest.mark.asyncio
    async def test_incomplete_session_is_not_finalized(self, harness, guard, finalizer) -> None:
        session = await _open_session(harness, guard, answered=2)

        with pytest.raises(IncompleteSessionError):
            await finalizer.finalize(session)

        assert session.state is SessionState.IN_PROGRESS
        assert await guard.holder("S1", "CSI") == "sess-1"

    @pytest.mark.asyncio
    async def test_partial_finalize_keeps_recorded_answers(self, harness, guard, finalizer) -> None:
        session = await _open_session(harness, guard, answered=1)

        result = await finalizer.finalize(session, partial=True)

        assert result.partial
        assert result.answered_count == 1
        assert session.state is SessionState.COMPLETED


def test_build_result_counts_fast_answers_against_threshold(harness) -> None:
    definition = make_definition(question_count=2)
    started = harness.clock.now()
    session = ActiveTestSession(
        session_id="s",
        assignment_id="a",
        student_id="S1",
        test_type="CSI",
        definition=definition,
        sequencer=QuestionSequencer(definition.questions, position=2),
        state=SessionState.COMPLETED,
        started_at=started,
        question_started_at=started,
        last_activity_at=started,
        answers=[
            Answer("csi-q0", 0, 1, 500, started),
            Answer("csi-q1", 1, 2, 2500, started),
        ],
    )

    result = build_result(session, started + timedelta(seconds=3), min_answer_time_ms=3000)

    assert result.fast_answer_count == 2
    assert result.total_elapsed_seconds == 3
