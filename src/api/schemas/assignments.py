from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class AssignmentCreate(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=64)
    test_type: str = Field(..., min_length=1, max_length=64)


class AssignmentCreated(BaseModel):
    assignment_id: str
    student_id: str
    test_type: str
    status: str
    token: str
    link: str
    expires_at: datetime


class AssignmentItem(BaseModel):
    assignment_id: str
    test_type: str
    test_name: str
    status: str = Field(..., description="pending, in_progress, completed, failed or expired")
    assigned_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None
    session_id: str | None = None
    token: str | None = Field(None, description="Present only while the test can be taken")


class AssignmentsResponse(BaseModel):
    student_id: str
    assignments: list[AssignmentItem]
