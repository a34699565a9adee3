from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from src.api.deps import issue_smoke_token
from src.core.auth import Role
from src.domain.models import (
    AnswerScale,
    Assignment,
    AssignmentStatus,
    Question,
    TestConfiguration,
    TestDefinition,
)


def auth_headers(user_id: str = "student-1", role: Role = Role.STUDENT) -> dict[str, str]:
    token = issue_smoke_token(user_id, role=role, email=f"{user_id}@example.com")
    return {"Authorization": f"Bearer {token}"}


def make_definition(
    test_type: str = "CSI",
    *,
    question_count: int = 3,
    time_limit_minutes: int | None = None,
    max_attempts: int | None = None,
    cooldown_hours: int | None = None,
) -> TestDefinition:
    """Small Likert test; question ids are ``<type>-q0``, ``<type>-q1``, ..."""
    questions = tuple(
        Question(
            question_id=f"{test_type.lower()}-q{index}",
            prompt=f"Statement {index + 1}",
            category="processing",
            scale=AnswerScale(),
        )
        for index in range(question_count)
    )
    return TestDefinition(
        test_type=test_type,
        name=f"{test_type} test",
        description=None,
        questions=questions,
        configuration=TestConfiguration(
            time_limit_minutes=time_limit_minutes,
            max_attempts=max_attempts,
            cooldown_hours=cooldown_hours,
        ),
    )


def make_assignment(
    *,
    student_id: str = "S1",
    test_type: str = "CSI",
    token: str | None = None,
    assigned_at: datetime,
    ttl_hours: int = 24,
    status: AssignmentStatus = AssignmentStatus.PENDING,
) -> Assignment:
    return Assignment(
        assignment_id=str(uuid.uuid4()),
        student_id=student_id,
        test_type=test_type,
        token=token or f"tok-{uuid.uuid4().hex}",
        status=status,
        assigned_at=assigned_at,
        expires_at=assigned_at + timedelta(hours=ttl_hours),
    )
