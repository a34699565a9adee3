from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.core.clock import ensure_aware
from src.domain.models import Assignment, AssignmentStatus, AssignmentSummary
from src.infrastructure.db.models import TestAssignment


class SqlAssignmentRegistry:
    """Assignment registry backed by ``test_assignments``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, assignment: Assignment, *, assigned_by: str | None = None) -> None:
        self.session.add(
            TestAssignment(
                id=assignment.assignment_id,
                student_id=assignment.student_id,
                test_type_slug=assignment.test_type,
                token=assignment.token,
                status=assignment.status,
                assigned_by=assigned_by,
                assigned_at=assignment.assigned_at,
                expires_at=assignment.expires_at,
            )
        )
        await self.session.flush()

    async def get(self, assignment_id: str) -> Assignment | None:
        model = await self.session.get(TestAssignment, assignment_id)
        return _to_assignment(model) if model else None

    async def get_by_token(self, token: str) -> Assignment | None:
        stmt = select(TestAssignment).where(TestAssignment.token == token)
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _to_assignment(model) if model else None

    async def list_for_student(self, student_id: str, *, now: datetime) -> list[AssignmentSummary]:
        stmt = (
            select(TestAssignment)
            .options(
                selectinload(TestAssignment.test_type),
                selectinload(TestAssignment.session),
            )
            .where(TestAssignment.student_id == student_id)
            .order_by(TestAssignment.assigned_at.desc())
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        summaries: list[AssignmentSummary] = []
        for row in rows:
            expires_at = ensure_aware(row.expires_at)
            status = row.status
            if status is AssignmentStatus.PENDING and expires_at <= now:
                status = AssignmentStatus.EXPIRED
            summaries.append(
                AssignmentSummary(
                    assignment_id=row.id,
                    student_id=row.student_id,
                    test_type=row.test_type_slug,
                    test_name=row.test_type.name if row.test_type else row.test_type_slug,
                    status=status,
                    assigned_at=ensure_aware(row.assigned_at),
                    expires_at=expires_at,
                    completed_at=ensure_aware(row.completed_at) if row.completed_at else None,
                    session_id=row.session.id if row.session else None,
                    # Only actionable assignments expose their token
                    token=row.token
                    if status in (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS)
                    else None,
                )
            )
        return summaries

    async def mark_status(
        self, assignment_id: str, status: AssignmentStatus, *, at: datetime
    ) -> None:
        values: dict[str, object] = {"status": status}
        if status is AssignmentStatus.IN_PROGRESS:
            values["started_at"] = at
        elif status in AssignmentStatus.terminal_statuses():
            values["completed_at"] = at
        await self.session.execute(
            update(TestAssignment).where(TestAssignment.id == assignment_id).values(**values)
        )


def _to_assignment(model: TestAssignment) -> Assignment:
    return Assignment(
        assignment_id=model.id,
        student_id=model.student_id,
        test_type=model.test_type_slug,
        token=model.token,
        status=model.status,
        assigned_at=ensure_aware(model.assigned_at),
        expires_at=ensure_aware(model.expires_at),
        started_at=ensure_aware(model.started_at) if model.started_at else None,
        completed_at=ensure_aware(model.completed_at) if model.completed_at else None,
    )
