"""Test assignment and access-link issuing."""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.clock import Clock, SystemClock
from src.core.config import Settings, get_settings
from src.core.logging import token_prefix
from src.domain.errors import UnknownTestTypeError
from src.domain.models import Assignment, AssignmentStatus, AssignmentSummary
from src.infrastructure.repositories.assignments import SqlAssignmentRegistry
from src.infrastructure.repositories.catalog import SqlTestCatalog

logger = structlog.get_logger()


@dataclass(slots=True)
class IssuedAssignment:
    assignment: Assignment
    link: str


def generate_test_token(
    secret: str, *, student_id: str, test_type: str, issued_at: datetime, expires_at: datetime
) -> str:
    """Sign the assignment claims; the random nonce keeps repeat assignments distinct."""
    payload = json.dumps(
        {
            "student_id": student_id,
            "test_type": test_type,
            "issued_at": issued_at.isoformat(),
            "expires_at": expires_at.isoformat(),
            "nonce": secrets.token_hex(8),
        },
        sort_keys=True,
    )
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def build_test_link(frontend_url: str, test_type: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/test/{test_type.lower()}/{token}"


class AssignmentService:
    """Assigns tests to students and lists their assignments."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.registry = SqlAssignmentRegistry(session)
        self.catalog = SqlTestCatalog(session)

    async def assign_test(
        self, *, student_id: str, test_type: str, assigned_by: str | None = None
    ) -> IssuedAssignment:
        if not await self.catalog.has_test_type(test_type):
            raise UnknownTestTypeError(f"Unknown test type '{test_type}'")

        now = self.clock.now()
        expires_at = now + timedelta(hours=self.settings.test_token_ttl_hours)
        token = generate_test_token(
            self.settings.test_token_secret,
            student_id=student_id,
            test_type=test_type,
            issued_at=now,
            expires_at=expires_at,
        )
        assignment = Assignment(
            assignment_id=str(uuid.uuid4()),
            student_id=student_id,
            test_type=test_type,
            token=token,
            status=AssignmentStatus.PENDING,
            assigned_at=now,
            expires_at=expires_at,
        )
        await self.registry.add(assignment, assigned_by=assigned_by)
        await self.session.commit()

        logger.info(
            "test_assigned",
            assignment_id=assignment.assignment_id,
            student_id=student_id,
            test_type=test_type,
            token=token_prefix(token),
            expires_at=expires_at.isoformat(),
        )
        return IssuedAssignment(
            assignment=assignment,
            link=build_test_link(self.settings.frontend_url, test_type, token),
        )

    async def list_for_student(self, student_id: str) -> list[AssignmentSummary]:
        return await self.registry.list_for_student(student_id, now=self.clock.now())
