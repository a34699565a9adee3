from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status
from src.domain import errors

# Most specific classes first; lookup walks the MRO
ERROR_STATUS: dict[type[errors.EngineError], int] = {
    errors.TokenExpiredError: status.HTTP_410_GONE,
    errors.TestDefinitionUnavailableError: status.HTTP_404_NOT_FOUND,
    errors.TokenVerificationError: status.HTTP_400_BAD_REQUEST,
    errors.StartRefusedError: status.HTTP_409_CONFLICT,
    errors.InvalidAnswerValueError: 422,
    errors.WrongQuestionError: 422,
    errors.IllegalTransitionError: status.HTTP_409_CONFLICT,
    errors.QuestionAlreadyAnsweredError: status.HTTP_409_CONFLICT,
    errors.AlreadyFinalizedError: status.HTTP_409_CONFLICT,
    errors.IncompleteSessionError: status.HTTP_409_CONFLICT,
    errors.NoCurrentQuestionError: status.HTTP_409_CONFLICT,
    errors.SessionTimedOutError: status.HTTP_410_GONE,
    errors.SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.SessionNotOwnedError: status.HTTP_403_FORBIDDEN,
    errors.UnknownTestTypeError: status.HTTP_404_NOT_FOUND,
}


def status_for(exc: errors.EngineError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


def engine_http_error(exc: errors.EngineError, **extra: Any) -> HTTPException:
    """Build the HTTPException surfaced for an engine error."""
    detail: dict[str, Any] = {"code": exc.code, "message": exc.message, **extra}
    if isinstance(exc, errors.ConcurrentSessionExistsError) and exc.holder_session_id:
        detail["session_id"] = exc.holder_session_id
    if isinstance(exc, errors.CooldownActiveError) and exc.available_at:
        detail["available_at"] = exc.available_at.isoformat()
    return HTTPException(status_code=status_for(exc), detail=detail)
