from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from src.api.deps import get_test_session_service, require_roles
from src.api.errors import engine_http_error
from src.api.routes.test_types import definition_response, question_item
from src.api.schemas.sessions import (
    AnswerSubmitRequest,
    AnswerSubmitResponse,
    FinalizedResultItem,
    SessionResponse,
)
from src.api.schemas.test_types import TestDefinitionResponse
from src.domain import User
from src.domain.errors import EngineError
from src.domain.models import ActiveTestSession, FinalizedResult
from src.domain.services.test_sessions import TestSessionService

router = APIRouter(tags=["Test Sessions"])
logger = structlog.get_logger()


def _session_response(
    session: ActiveTestSession,
    *,
    remaining_seconds: float | None = None,
    resumed: bool = False,
) -> SessionResponse:
    current = None
    if not session.is_terminal and session.sequencer.has_next():
        current = question_item(session.sequencer.current(), session.current_index)
    return SessionResponse(
        session_id=session.session_id,
        test_type=session.test_type,
        state=session.state.value,
        current_index=session.current_index,
        question_count=session.definition.question_count,
        answered_count=len(session.answers),
        started_at=session.started_at,
        completed_at=session.completed_at,
        remaining_seconds=remaining_seconds,
        current_question=current,
        resumed=resumed,
    )


def _result_item(result: FinalizedResult | None) -> FinalizedResultItem | None:
    if result is None:
        return None
    return FinalizedResultItem(
        state=result.state,
        answered_count=result.answered_count,
        question_count=result.question_count,
        total_elapsed_seconds=result.total_elapsed_seconds,
        completed_at=result.completed_at,
        partial=result.partial,
        fast_answer_count=result.fast_answer_count,
    )


@router.get("/tests/{test_type}/verify/{token}", response_model=TestDefinitionResponse)
async def verify_token(
    test_type: str,
    token: str,
    service: TestSessionService = Depends(get_test_session_service),
    user: User = Depends(require_roles(["student"])),
) -> TestDefinitionResponse:
    """Exchange an access token for the test definition without consuming it."""
    result = await service.verify_token(token, test_type, student_id=user.user_id)
    if not result.ok:
        raise engine_http_error(result.error)
    return definition_response(result.definition)


@router.post("/tests/{test_type}/start/{token}", response_model=SessionResponse)
async def start_session(
    test_type: str,
    token: str,
    service: TestSessionService = Depends(get_test_session_service),
    user: User = Depends(require_roles(["student"])),
) -> SessionResponse:
    """Start the session bound to ``token``, or resume it when already running."""
    result = await service.start_session(token, test_type, student_id=user.user_id)
    if not result.ok:
        raise engine_http_error(result.error)
    session = result.session
    return _session_response(
        session,
        remaining_seconds=session.remaining_seconds(service.clock.now()),
        resumed=result.resumed,
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    service: TestSessionService = Depends(get_test_session_service),
    user: User = Depends(require_roles(["student"])),
) -> SessionResponse:
    try:
        view = await service.get_session_view(session_id, student_id=user.user_id)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return _session_response(view.session, remaining_seconds=view.remaining_seconds)


@router.post("/sessions/{session_id}/answers", response_model=AnswerSubmitResponse)
async def submit_answer(
    session_id: str,
    payload: AnswerSubmitRequest,
    service: TestSessionService = Depends(get_test_session_service),
    user: User = Depends(require_roles(["student"])),
) -> AnswerSubmitResponse:
    """Record the answer to the current question; the last answer completes the test."""
    try:
        result = await service.submit_answer(
            session_id,
            student_id=user.user_id,
            value=payload.value,
            question_id=payload.question_id,
        )
    except EngineError as exc:
        raise engine_http_error(exc) from exc

    if not result.ok:
        extra = {}
        if result.finalized is not None:
            extra["result"] = _result_item(result.finalized).model_dump(mode="json")
        raise engine_http_error(result.error, **extra)

    view = await service.get_session_view(session_id, student_id=user.user_id)
    session = view.session
    return AnswerSubmitResponse(
        accepted=result.accepted,
        is_last_question=result.is_last_question,
        replayed=result.replayed,
        state=session.state.value,
        current_index=session.current_index,
        next_question=question_item(view.current_question, session.current_index)
        if view.current_question
        else None,
        result=_result_item(result.finalized),
    )


@router.post("/sessions/{session_id}/abandon", response_model=SessionResponse)
async def abandon_session(
    session_id: str,
    service: TestSessionService = Depends(get_test_session_service),
    user: User = Depends(require_roles(["student"])),
) -> SessionResponse:
    try:
        session = await service.abandon_session(session_id, student_id=user.user_id)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    logger.info("session_abandoned", session_id=session_id, student_id=user.user_id)
    return _session_response(session)
