from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.domain.models import AnswerScale, Question, TestConfiguration, TestDefinition
from src.infrastructure.db.models import TestQuestion, TestTypeModel


class SqlTestCatalog:
    """Reads test definitions from ``test_types`` / ``test_questions``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_definition(self, test_type: str) -> TestDefinition | None:
        stmt = (
            select(TestTypeModel)
            .options(selectinload(TestTypeModel.questions))
            .where(TestTypeModel.slug == test_type, TestTypeModel.is_active.is_(True))
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        if model is None:
            return None
        return _to_definition(model)

    async def has_test_type(self, test_type: str) -> bool:
        stmt = select(TestTypeModel.id).where(
            TestTypeModel.slug == test_type, TestTypeModel.is_active.is_(True)
        )
        return (await self.session.execute(stmt)).first() is not None

    async def list_test_types(self) -> list[TestDefinition]:
        stmt = (
            select(TestTypeModel)
            .options(selectinload(TestTypeModel.questions))
            .where(TestTypeModel.is_active.is_(True))
            .order_by(TestTypeModel.slug)
        )
        models: Sequence[TestTypeModel] = (await self.session.execute(stmt)).scalars().all()
        return [_to_definition(model) for model in models]

    async def upsert_definition(self, definition: TestDefinition) -> bool:
        """Insert or refresh a test type and its questions. Returns True when created."""
        stmt = (
            select(TestTypeModel)
            .options(selectinload(TestTypeModel.questions))
            .where(TestTypeModel.slug == definition.test_type)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        created = model is None
        config = definition.configuration
        if model is None:
            model = TestTypeModel(slug=definition.test_type, name=definition.name)
            self.session.add(model)

        model.name = definition.name
        model.description = definition.description
        model.time_limit_minutes = config.time_limit_minutes
        model.max_attempts = config.max_attempts
        model.cooldown_hours = config.cooldown_hours
        model.instructions = config.instructions
        model.is_active = True

        # Questions are replaced wholesale; sessions keep their own snapshot
        if not created:
            for stale in list(model.questions):
                await self.session.delete(stale)
            await self.session.flush()
            await self.session.refresh(model, attribute_names=["questions"])

        for sequence, question in enumerate(definition.questions):
            self.session.add(
                TestQuestion(
                    id=question.question_id,
                    test_type_slug=definition.test_type,
                    sequence=sequence,
                    prompt=question.prompt,
                    category=question.category,
                    scale_min=question.scale.minimum,
                    scale_max=question.scale.maximum,
                    scale_labels=list(question.scale.labels),
                )
            )
        await self.session.flush()
        await self.session.refresh(model, attribute_names=["questions"])
        return created


def _to_definition(model: TestTypeModel) -> TestDefinition:
    questions = tuple(
        Question(
            question_id=row.id,
            prompt=row.prompt,
            category=row.category,
            scale=AnswerScale(
                minimum=row.scale_min,
                maximum=row.scale_max,
                labels=tuple(row.scale_labels or ()),
            ),
        )
        for row in sorted(model.questions, key=lambda q: q.sequence)
        if row.is_active
    )
    return TestDefinition(
        test_type=model.slug,
        name=model.name,
        description=model.description,
        questions=questions,
        configuration=TestConfiguration(
            time_limit_minutes=model.time_limit_minutes,
            max_attempts=model.max_attempts,
            cooldown_hours=model.cooldown_hours,
            instructions=model.instructions,
        ),
    )
