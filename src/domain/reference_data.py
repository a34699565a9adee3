from __future__ import annotations

from src.domain.models import (
    LIKERT_LABELS,
    AnswerScale,
    Question,
    TestConfiguration,
    TestDefinition,
)

CSI_CATEGORIES = (
    "processing",
    "creativity",
    "visual_preference",
    "decision",
    "autonomy",
)

TEST_TYPE_DEFINITIONS = [
    {
        "slug": "CSI",
        "name": "Cognitive Style Index",
        "description": "Self-report inventory of how a student processes and organises information.",
        "time_limit_minutes": 30,
        "max_attempts": 1,
        "cooldown_hours": 168,
        "instructions": (
            "Read each statement and choose how much it describes you. "
            "There are no right or wrong answers; answer with your first impression."
        ),
    },
]


def make_question(
    test_type: str,
    sequence: int,
    category: str,
    prompt: str,
) -> dict[str, object]:
    return {
        "question_id": f"{test_type.lower()}-q{sequence:02d}",
        "test_type": test_type,
        "sequence": sequence,
        "category": category,
        "prompt": prompt,
    }


QUESTION_TEMPLATES = [
    make_question("CSI", 1, "processing", "I prefer to analyse a problem step by step."),
    make_question("CSI", 2, "processing", "I grasp the overall picture before the details."),
    make_question("CSI", 3, "creativity", "I enjoy finding new ways to solve familiar tasks."),
    make_question("CSI", 4, "creativity", "I like experimenting even when the result is uncertain."),
    make_question(
        "CSI", 5, "visual_preference", "Diagrams and pictures help me understand more than text."
    ),
    make_question(
        "CSI", 6, "visual_preference", "I remember things better when I can picture them."
    ),
    make_question("CSI", 7, "decision", "I make decisions quickly, trusting my intuition."),
    make_question("CSI", 8, "decision", "Before deciding I compare every option carefully."),
    make_question("CSI", 9, "autonomy", "I prefer to organise my study time on my own."),
    make_question("CSI", 10, "autonomy", "I work best when nobody tells me how to proceed."),
]


def build_definition(slug: str) -> TestDefinition:
    """Assemble the seed definition for ``slug`` from the templates above."""
    meta = next(item for item in TEST_TYPE_DEFINITIONS if item["slug"] == slug)
    questions = tuple(
        Question(
            question_id=str(item["question_id"]),
            prompt=str(item["prompt"]),
            category=str(item["category"]),
            scale=AnswerScale(minimum=1, maximum=5, labels=LIKERT_LABELS),
        )
        for item in sorted(
            (q for q in QUESTION_TEMPLATES if q["test_type"] == slug),
            key=lambda q: q["sequence"],
        )
    )
    return TestDefinition(
        test_type=slug,
        name=str(meta["name"]),
        description=meta.get("description"),
        questions=questions,
        configuration=TestConfiguration(
            time_limit_minutes=meta.get("time_limit_minutes"),
            max_attempts=meta.get("max_attempts"),
            cooldown_hours=meta.get("cooldown_hours"),
            instructions=meta.get("instructions"),
        ),
    )


def seed_definitions() -> list[TestDefinition]:
    return [build_definition(item["slug"]) for item in TEST_TYPE_DEFINITIONS]
