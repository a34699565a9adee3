"""Session engine schema: test catalog, assignments, sessions, answers, locks

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610180001"
down_revision = None
branch_labels = None
depends_on = None

assignment_status_enum = sa.Enum(
    "pending",
    "in_progress",
    "completed",
    "failed",
    "expired",
    name="assignment_status",
)
session_status_enum = sa.Enum(
    "in_progress",
    "completed",
    "failed",
    name="session_status",
)


def upgrade() -> None:
    op.create_table(
        "test_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=True),
        sa.Column("max_attempts", sa.Integer(), nullable=True),
        sa.Column("cooldown_hours", sa.Integer(), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("slug", name="uq_test_types_slug"),
    )

    op.create_table(
        "test_questions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "test_type_slug",
            sa.String(length=64),
            sa.ForeignKey("test_types.slug", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("scale_min", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("scale_max", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("scale_labels", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("test_type_slug", "sequence", name="uq_test_question_sequence"),
    )

    op.create_table(
        "test_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column(
            "test_type_slug",
            sa.String(length=64),
            sa.ForeignKey("test_types.slug", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("status", assignment_status_enum, nullable=False, server_default="pending"),
        sa.Column("assigned_by", sa.String(length=64), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_test_assignments_token", "test_assignments", ["token"], unique=True
    )
    op.create_index("ix_test_assignments_student_id", "test_assignments", ["student_id"])
    op.create_index("ix_test_assignments_status", "test_assignments", ["status"])

    op.create_table(
        "test_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assignment_id",
            sa.String(length=36),
            sa.ForeignKey("test_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("test_type_slug", sa.String(length=64), nullable=False),
        sa.Column("status", session_status_enum, nullable=False, server_default="in_progress"),
        sa.Column("definition", sa.JSON(), nullable=False),
        sa.Column("current_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("question_started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(length=64), nullable=True),
        sa.Column("lock_released", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("assignment_id", name="uq_test_sessions_assignment_id"),
    )
    op.create_index("ix_test_sessions_student_id", "test_sessions", ["student_id"])
    op.create_index("ix_test_sessions_status", "test_sessions", ["status"])

    op.create_table(
        "session_answers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("test_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("time_spent_ms", sa.Integer(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("session_id", "question_id", name="uq_session_answer_question"),
        sa.UniqueConstraint("session_id", "sequence", name="uq_session_answer_sequence"),
    )
    op.create_index("ix_session_answers_session_id", "session_answers", ["session_id"])

    # The primary key is the compare-and-set for one live session per student and test type
    op.create_table(
        "session_locks",
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("test_type_slug", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("student_id", "test_type_slug", name="pk_session_locks"),
    )


def downgrade() -> None:
    op.drop_table("session_locks")
    op.drop_index("ix_session_answers_session_id", table_name="session_answers")
    op.drop_table("session_answers")
    op.drop_index("ix_test_sessions_status", table_name="test_sessions")
    op.drop_index("ix_test_sessions_student_id", table_name="test_sessions")
    op.drop_table("test_sessions")
    op.drop_index("ix_test_assignments_status", table_name="test_assignments")
    op.drop_index("ix_test_assignments_student_id", table_name="test_assignments")
    op.drop_index("ix_test_assignments_token", table_name="test_assignments")
    op.drop_table("test_assignments")
    op.drop_table("test_questions")
    op.drop_table("test_types")
    session_status_enum.drop(op.get_bind(), checkfirst=True)
    assignment_status_enum.drop(op.get_bind(), checkfirst=True)
