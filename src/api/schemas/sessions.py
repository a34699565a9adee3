from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, StrictInt
from src.api.schemas.test_types import QuestionItem


class AnswerSubmitRequest(BaseModel):
    value: StrictInt = Field(..., description="Ordinal answer, 1 (strongly disagree) to 5")
    question_id: str | None = Field(
        None, description="Question being answered; required for safe retries"
    )


class FinalizedResultItem(BaseModel):
    state: str
    answered_count: int
    question_count: int
    total_elapsed_seconds: float
    completed_at: datetime
    partial: bool = False
    fast_answer_count: int = 0


class SessionResponse(BaseModel):
    session_id: str
    test_type: str
    state: str
    current_index: int
    question_count: int
    answered_count: int
    started_at: datetime
    completed_at: datetime | None = None
    remaining_seconds: float | None = None
    current_question: QuestionItem | None = None
    resumed: bool = False


class AnswerSubmitResponse(BaseModel):
    accepted: bool
    is_last_question: bool
    replayed: bool = False
    state: str
    current_index: int
    next_question: QuestionItem | None = None
    result: FinalizedResultItem | None = None
