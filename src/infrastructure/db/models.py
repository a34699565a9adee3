from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from src.domain.models import AssignmentStatus

from .base import Base


class SessionStatus(str, enum.Enum):
    """Persisted lifecycle state of a test session.

    Only states reachable after a successful start are ever stored.
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TestTypeModel(Base):
    """Catalog of administrable test types (e.g. CSI)."""

    __test__ = False
    __tablename__ = "test_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    time_limit_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cooldown_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    questions: Mapped[list[TestQuestion]] = relationship(
        back_populates="test_type",
        cascade="all,delete",
        order_by="TestQuestion.sequence",
    )


class TestQuestion(Base):
    __test__ = False
    __tablename__ = "test_questions"
    __table_args__ = (UniqueConstraint("test_type_slug", "sequence", name="uq_test_question_sequence"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    test_type_slug: Mapped[str] = mapped_column(
        ForeignKey("test_types.slug", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    scale_min: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    scale_max: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    scale_labels: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    test_type: Mapped[TestTypeModel] = relationship(back_populates="questions")


class TestAssignment(Base):
    """A test assigned to a student together with its single-use access token."""

    __test__ = False
    __tablename__ = "test_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    test_type_slug: Mapped[str] = mapped_column(
        ForeignKey("test_types.slug", ondelete="RESTRICT"), nullable=False
    )
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(
            AssignmentStatus,
            name="assignment_status",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        default=AssignmentStatus.PENDING,
        nullable=False,
        index=True,
    )
    assigned_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    test_type: Mapped[TestTypeModel] = relationship()
    session: Mapped[TestSessionModel | None] = relationship(
        back_populates="assignment", uselist=False
    )


class TestSessionModel(Base):
    __test__ = False
    __tablename__ = "test_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # One session per assignment: a consumed token can never start a second attempt
    assignment_id: Mapped[str] = mapped_column(
        ForeignKey("test_assignments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    test_type_slug: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        Enum(
            SessionStatus,
            name="session_status",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        default=SessionStatus.IN_PROGRESS,
        nullable=False,
        index=True,
    )
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    question_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lock_released: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    assignment: Mapped[TestAssignment] = relationship(back_populates="session")
    answers: Mapped[list[SessionAnswer]] = relationship(
        back_populates="session",
        cascade="all,delete-orphan",
        order_by="SessionAnswer.sequence",
    )


class SessionAnswer(Base):
    __tablename__ = "session_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_answer_question"),
        UniqueConstraint("session_id", "sequence", name="uq_session_answer_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(
        ForeignKey("test_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    time_spent_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    session: Mapped[TestSessionModel] = relationship(back_populates="answers")


class SessionLock(Base):
    """Live lock per (student, test type); the primary key is the compare-and-set."""

    __tablename__ = "session_locks"

    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    test_type_slug: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


__all__ = [
    "SessionStatus",
    "TestTypeModel",
    "TestQuestion",
    "TestAssignment",
    "TestSessionModel",
    "SessionAnswer",
    "SessionLock",
]
