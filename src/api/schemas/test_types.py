from __future__ import annotations

from pydantic import BaseModel


class AnswerScaleItem(BaseModel):
    minimum: int
    maximum: int
    labels: list[str] = []


class QuestionItem(BaseModel):
    id: str
    sequence: int
    prompt: str
    category: str | None = None
    scale: AnswerScaleItem


class TestConfigurationItem(BaseModel):
    time_limit_minutes: int | None = None
    max_attempts: int | None = None
    cooldown_hours: int | None = None
    instructions: str | None = None


class TestTypeItem(BaseModel):
    __test__ = False

    slug: str
    name: str
    description: str | None = None
    question_count: int
    configuration: TestConfigurationItem


class TestTypesResponse(BaseModel):
    __test__ = False

    test_types: list[TestTypeItem]


class TestDefinitionResponse(TestTypeItem):
    """Definition returned on token verification, questions included."""

    questions: list[QuestionItem]
