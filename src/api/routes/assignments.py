from __future__ import annotations

from fastapi import APIRouter, Depends, status
from src.api.deps import get_assignment_service, require_roles
from src.api.errors import engine_http_error
from src.api.schemas.assignments import (
    AssignmentCreate,
    AssignmentCreated,
    AssignmentItem,
    AssignmentsResponse,
)
from src.domain import User
from src.domain.errors import UnknownTestTypeError
from src.domain.models import AssignmentSummary
from src.domain.services.assignments import AssignmentService

router = APIRouter(tags=["Assignments"])


def _assignment_item(summary: AssignmentSummary) -> AssignmentItem:
    return AssignmentItem(
        assignment_id=summary.assignment_id,
        test_type=summary.test_type,
        test_name=summary.test_name,
        status=summary.status.value,
        assigned_at=summary.assigned_at,
        expires_at=summary.expires_at,
        completed_at=summary.completed_at,
        session_id=summary.session_id,
        token=summary.token,
    )


@router.post("/assignments", response_model=AssignmentCreated, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    payload: AssignmentCreate,
    service: AssignmentService = Depends(get_assignment_service),
    user: User = Depends(require_roles(["teacher", "admin"])),
) -> AssignmentCreated:
    """Assign a test to a student and issue its single-use access link."""
    try:
        issued = await service.assign_test(
            student_id=payload.student_id,
            test_type=payload.test_type,
            assigned_by=user.user_id,
        )
    except UnknownTestTypeError as exc:
        raise engine_http_error(exc) from exc

    assignment = issued.assignment
    return AssignmentCreated(
        assignment_id=assignment.assignment_id,
        student_id=assignment.student_id,
        test_type=assignment.test_type,
        status=assignment.status.value,
        token=assignment.token,
        link=issued.link,
        expires_at=assignment.expires_at,
    )


@router.get("/students/{student_id}/assignments", response_model=AssignmentsResponse)
async def list_student_assignments(
    student_id: str,
    service: AssignmentService = Depends(get_assignment_service),
    _: User = Depends(require_roles(["teacher", "admin"])),
) -> AssignmentsResponse:
    summaries = await service.list_for_student(student_id)
    return AssignmentsResponse(
        student_id=student_id, assignments=[_assignment_item(s) for s in summaries]
    )


@router.get("/me/assignments", response_model=AssignmentsResponse)
async def list_my_assignments(
    service: AssignmentService = Depends(get_assignment_service),
    user: User = Depends(require_roles(["student"])),
) -> AssignmentsResponse:
    """Return the tests assigned to the authenticated student."""
    summaries = await service.list_for_student(user.user_id)
    return AssignmentsResponse(
        student_id=user.user_id, assignments=[_assignment_item(s) for s in summaries]
    )
