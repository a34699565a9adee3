"""Collaborator protocols consumed by the session engine."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.domain.models import (
    ActiveTestSession,
    Answer,
    Assignment,
    AssignmentStatus,
    AssignmentSummary,
    LockEntry,
    TestDefinition,
)
from src.domain.states import SessionState


class TestCatalog(Protocol):
    __test__ = False

    async def load_definition(self, test_type: str) -> TestDefinition | None: ...

    async def has_test_type(self, test_type: str) -> bool: ...


class AssignmentRegistry(Protocol):
    async def get_by_token(self, token: str) -> Assignment | None: ...

    async def list_for_student(
        self, student_id: str, *, now: datetime
    ) -> list[AssignmentSummary]: ...

    async def mark_status(
        self, assignment_id: str, status: AssignmentStatus, *, at: datetime
    ) -> None: ...


class SessionStore(Protocol):
    async def create_session(self, session: ActiveTestSession) -> None: ...

    async def get_session(self, session_id: str) -> ActiveTestSession | None: ...

    async def get_session_for_assignment(
        self, assignment_id: str
    ) -> ActiveTestSession | None: ...

    async def update_session(self, session: ActiveTestSession) -> None: ...

    async def append_answer(
        self,
        session: ActiveTestSession,
        answer: Answer,
        *,
        next_position: int,
        question_started_at: datetime,
    ) -> bool:
        """Persist an answer together with the advanced cursor, atomically.

        Returns False when an identical answer is already stored. Raises
        QuestionAlreadyAnsweredError for a different stored value and
        AlreadyFinalizedError when the session is no longer in progress.
        """
        ...

    async def close_session(
        self,
        session_id: str,
        state: SessionState,
        *,
        at: datetime,
        completed_at: datetime | None = None,
        failure_reason: str | None = None,
    ) -> bool:
        """Move a live session to a terminal state; False when it was already closed."""
        ...

    async def list_active_sessions(self) -> list[ActiveTestSession]: ...

    async def completed_attempts(
        self, student_id: str, test_type: str
    ) -> tuple[int, datetime | None]:
        """Return the number of completed sessions and the latest completion time."""
        ...

    async def is_live(self, session_id: str) -> bool:
        """True while the session exists and is still in progress."""
        ...


class ConcurrencyGuard(Protocol):
    async def try_acquire(self, student_id: str, test_type: str, *, session_id: str) -> bool:
        """Atomically take the lock; True also when ``session_id`` already holds it."""
        ...

    async def release(
        self, student_id: str, test_type: str, *, session_id: str | None = None
    ) -> None:
        """Drop the lock. No-op when absent or held by a different session."""
        ...

    async def refresh(self, student_id: str, test_type: str, *, session_id: str) -> None:
        """Extend the lock held by ``session_id``; backends without expiry ignore it."""
        ...

    async def holder(self, student_id: str, test_type: str) -> str | None: ...

    async def entries(self) -> list[LockEntry]: ...
