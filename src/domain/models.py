from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from src.domain.states import SessionState

if TYPE_CHECKING:
    from src.domain.errors import EngineError
    from src.domain.services.sequencer import QuestionSequencer


@dataclass(slots=True)
class User:
    """Represents an authenticated actor within the system."""

    user_id: str
    email: str = ""
    roles: list[str] = field(default_factory=list)


class AssignmentStatus(str, enum.Enum):
    """Assignment status as shown to students and the admin console."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @classmethod
    def terminal_statuses(cls) -> tuple[AssignmentStatus, ...]:
        return (cls.COMPLETED, cls.FAILED)


class TimeoutPolicy(str, enum.Enum):
    """What happens to a session that runs past its time limit."""

    COMPLETE = "complete"
    FAIL = "fail"


LIKERT_LABELS: tuple[str, ...] = (
    "strongly disagree",
    "disagree",
    "neutral",
    "agree",
    "strongly agree",
)


@dataclass(frozen=True, slots=True)
class AnswerScale:
    """Ordinal answer domain, inclusive on both ends."""

    minimum: int = 1
    maximum: int = 5
    labels: tuple[str, ...] = LIKERT_LABELS

    def accepts(self, value: Any) -> bool:
        # bool is an int subclass; True must not pass as 1
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return self.minimum <= value <= self.maximum


@dataclass(frozen=True, slots=True)
class Question:
    question_id: str
    prompt: str
    category: str | None = None
    scale: AnswerScale = field(default_factory=AnswerScale)


@dataclass(frozen=True, slots=True)
class TestConfiguration:
    __test__ = False

    time_limit_minutes: int | None = None
    max_attempts: int | None = None
    cooldown_hours: int | None = None
    instructions: str | None = None


@dataclass(frozen=True, slots=True)
class TestDefinition:
    """Immutable snapshot of a test as loaded at verification time."""

    __test__ = False

    test_type: str
    name: str
    description: str | None
    questions: tuple[Question, ...]
    configuration: TestConfiguration = field(default_factory=TestConfiguration)

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def time_limit(self) -> timedelta | None:
        minutes = self.configuration.time_limit_minutes
        return timedelta(minutes=minutes) if minutes else None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TestDefinition:
        questions = tuple(
            Question(
                question_id=item["question_id"],
                prompt=item["prompt"],
                category=item.get("category"),
                scale=AnswerScale(
                    minimum=item["scale"]["minimum"],
                    maximum=item["scale"]["maximum"],
                    labels=tuple(item["scale"].get("labels") or ()),
                ),
            )
            for item in payload.get("questions", [])
        )
        return cls(
            test_type=payload["test_type"],
            name=payload["name"],
            description=payload.get("description"),
            questions=questions,
            configuration=TestConfiguration(**(payload.get("configuration") or {})),
        )


@dataclass(frozen=True, slots=True)
class Answer:
    question_id: str
    sequence: int
    value: int
    time_spent_ms: int
    recorded_at: datetime


@dataclass(slots=True)
class Assignment:
    """A test assigned to a student, addressed by its access token."""

    assignment_id: str
    student_id: str
    test_type: str
    token: str
    status: AssignmentStatus
    assigned_at: datetime
    expires_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(slots=True)
class ActiveTestSession:
    """Mutable aggregate for one test-taking attempt."""

    session_id: str
    assignment_id: str
    student_id: str
    test_type: str
    definition: TestDefinition
    sequencer: QuestionSequencer
    state: SessionState
    started_at: datetime
    question_started_at: datetime
    last_activity_at: datetime
    answers: list[Answer] = field(default_factory=list)
    completed_at: datetime | None = None
    failure_reason: str | None = None
    lock_released: bool = False

    @property
    def current_index(self) -> int:
        return self.sequencer.position

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def deadline(self) -> datetime | None:
        limit = self.definition.time_limit
        return self.started_at + limit if limit else None

    def answer_for(self, question_id: str) -> Answer | None:
        return next((a for a in self.answers if a.question_id == question_id), None)

    def remaining_seconds(self, now: datetime) -> float | None:
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, (deadline - now).total_seconds())


@dataclass(slots=True)
class FinalizedResult:
    session_id: str
    state: str
    answered_count: int
    question_count: int
    total_elapsed_seconds: float
    completed_at: datetime
    partial: bool = False
    fast_answer_count: int = 0


@dataclass(slots=True)
class AssignmentSummary:
    assignment_id: str
    student_id: str
    test_type: str
    test_name: str
    status: AssignmentStatus
    assigned_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None
    session_id: str | None = None
    token: str | None = None


@dataclass(slots=True)
class LockEntry:
    student_id: str
    test_type: str
    session_id: str
    acquired_at: datetime


# Typed results returned by the lifecycle controller


@dataclass(slots=True)
class VerifyResult:
    definition: TestDefinition | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class StartResult:
    session: ActiveTestSession | None = None
    resumed: bool = False
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class SubmitResult:
    accepted: bool
    is_last_question: bool = False
    replayed: bool = False
    finalized: FinalizedResult | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
