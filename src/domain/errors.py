"""Exceptions raised by the test session engine.

Every error carries a stable ``code`` (surfaced to clients) and a ``category``
from the engine taxonomy: ``token``, ``concurrency``, ``validation``,
``consistency`` or ``timeout``.
"""

from __future__ import annotations

from datetime import datetime


class EngineError(Exception):
    """Base class for session engine errors."""

    code = "engine_error"
    category = "internal"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


# Token errors


class TokenVerificationError(EngineError):
    """Token could not be verified."""

    code = "token_invalid"
    category = "token"


class TokenInvalidError(TokenVerificationError):
    """Token is malformed, unknown or already consumed."""

    code = "token_invalid"


class TokenExpiredError(TokenVerificationError):
    """Token is past its expiry."""

    code = "token_expired"


class TestTypeMismatchError(TokenVerificationError):
    """Token is bound to a different test type."""

    __test__ = False
    code = "test_type_mismatch"


class TestDefinitionUnavailableError(TokenVerificationError):
    """Test type has no active questions."""

    __test__ = False
    code = "definition_unavailable"


# Concurrency conflicts and start refusals


class StartRefusedError(EngineError):
    """Session start was refused; the session stays in the intro state."""

    code = "start_refused"
    category = "concurrency"


class ConcurrentSessionExistsError(StartRefusedError):
    """Another session of the same test type is already in progress."""

    code = "concurrent_session_exists"

    def __init__(self, message: str | None = None, *, holder_session_id: str | None = None):
        super().__init__(message)
        self.holder_session_id = holder_session_id


class AttemptsExhaustedError(StartRefusedError):
    """Maximum number of attempts for this test type has been reached."""

    code = "attempts_exhausted"
    category = "validation"


class CooldownActiveError(StartRefusedError):
    """Cooldown period since the last completed attempt has not elapsed."""

    code = "cooldown_active"
    category = "validation"

    def __init__(self, message: str | None = None, *, available_at: datetime | None = None):
        super().__init__(message)
        self.available_at = available_at


# Validation errors


class InvalidAnswerValueError(EngineError):
    """Answer value lies outside the question's answer domain."""

    code = "invalid_answer_value"
    category = "validation"


class WrongQuestionError(EngineError):
    """Submission targets a question other than the current one."""

    code = "wrong_question"
    category = "validation"


class IllegalTransitionError(EngineError):
    """Operation is not allowed in the current lifecycle state."""

    code = "illegal_transition"
    category = "validation"


# Consistency errors


class QuestionAlreadyAnsweredError(EngineError):
    """Question already has a recorded answer with a different value."""

    code = "question_already_answered"
    category = "consistency"


class AlreadyFinalizedError(EngineError):
    """Session has already been finalized."""

    code = "already_finalized"
    category = "consistency"


class IncompleteSessionError(EngineError):
    """Answer count does not match question count."""

    code = "incomplete_session"
    category = "consistency"


class NoCurrentQuestionError(EngineError):
    """Sequencer cursor is past the last question."""

    code = "no_current_question"
    category = "consistency"


# Timeout


class SessionTimedOutError(EngineError):
    """Session exceeded its time limit."""

    code = "session_timed_out"
    category = "timeout"


# Lookup errors raised by the application service


class SessionNotFoundError(EngineError):
    """Session does not exist."""

    code = "session_not_found"
    category = "validation"


class SessionNotOwnedError(EngineError):
    """Session belongs to another student."""

    code = "session_not_owned"
    category = "validation"


class UnknownTestTypeError(EngineError):
    """Test type is not in the catalog."""

    code = "unknown_test_type"
    category = "validation"
