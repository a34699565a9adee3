import pytest
from src.domain.errors import NoCurrentQuestionError
from src.domain.services.sequencer import QuestionSequencer

from tests.utils import make_definition


def _sequencer(position: int = 0) -> QuestionSequencer:
    return QuestionSequencer(make_definition(question_count=3).questions, position=position)


def test_walks_questions_in_order() -> None:
    sequencer = _sequencer()
    seen = []

    while sequencer.has_next():
        seen.append(sequencer.current().question_id)
        sequencer.advance()

    assert seen == ["csi-q0", "csi-q1", "csi-q2"]
    assert sequencer.position == sequencer.total == 3


def test_current_past_end_raises() -> None:
    sequencer = _sequencer(position=3)

    assert not sequencer.has_next()
    with pytest.raises(NoCurrentQuestionError):
        sequencer.current()


def test_advance_never_exceeds_question_count() -> None:
    sequencer = _sequencer(position=3)

    with pytest.raises(NoCurrentQuestionError):
        sequencer.advance()
    assert sequencer.position == 3


def test_rejects_out_of_range_start_position() -> None:
    with pytest.raises(ValueError):
        _sequencer(position=4)


def test_resumes_from_stored_position() -> None:
    sequencer = _sequencer(position=2)

    assert sequencer.current().question_id == "csi-q2"
