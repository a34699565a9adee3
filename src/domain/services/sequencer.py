from __future__ import annotations

from collections.abc import Sequence

from src.domain.errors import NoCurrentQuestionError
from src.domain.models import Question


class QuestionSequencer:
    """Forward-only cursor over a session's ordered questions."""

    def __init__(self, questions: Sequence[Question], position: int = 0) -> None:
        if position < 0 or position > len(questions):
            raise ValueError(f"Position {position} outside 0..{len(questions)}")
        self._questions = tuple(questions)
        self._position = position

    @property
    def position(self) -> int:
        return self._position

    @property
    def total(self) -> int:
        return len(self._questions)

    def current(self) -> Question:
        if self._position >= len(self._questions):
            raise NoCurrentQuestionError(
                f"No question at index {self._position} (total {len(self._questions)})"
            )
        return self._questions[self._position]

    def has_next(self) -> bool:
        """True while a question remains to be answered."""
        return self._position < len(self._questions)

    def advance(self) -> None:
        if self._position >= len(self._questions):
            raise NoCurrentQuestionError("Sequence already exhausted")
        self._position += 1
