import pytest
from src.api.errors import engine_http_error, status_for
from src.domain import errors


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (errors.InvalidAnswerValueError(), 422),
        (errors.WrongQuestionError(), 422),
        (errors.TokenExpiredError(), 410),
        (errors.TestTypeMismatchError(), 400),
        (errors.ConcurrentSessionExistsError(), 409),
        (errors.AlreadyFinalizedError(), 409),
        (errors.SessionNotOwnedError(), 403),
        (errors.EngineError(), 400),
    ],
)
def test_engine_errors_map_to_http_status(exc: errors.EngineError, expected: int) -> None:
    assert status_for(exc) == expected


def test_http_error_carries_code_and_holder() -> None:
    exc = errors.ConcurrentSessionExistsError(holder_session_id="sess-1")

    http_error = engine_http_error(exc)

    assert http_error.status_code == 409
    assert http_error.detail["code"] == "concurrent_session_exists"
    assert http_error.detail["session_id"] == "sess-1"
