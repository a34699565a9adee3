"""Session lifecycle states and the transition table."""

from __future__ import annotations

import enum

from src.domain.errors import IllegalTransitionError


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    VERIFYING = "verifying"
    INTRO = "intro"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


class SessionEvent(str, enum.Enum):
    VERIFY = "verify"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    START = "start"
    ANSWER = "answer"
    LAST_ANSWER = "last_answer"
    TIMEOUT_COMPLETE = "timeout_complete"
    TIMEOUT_FAIL = "timeout_fail"
    ABANDON = "abandon"


_TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.UNINITIALIZED, SessionEvent.VERIFY): SessionState.VERIFYING,
    (SessionState.VERIFYING, SessionEvent.VERIFIED): SessionState.INTRO,
    (SessionState.VERIFYING, SessionEvent.VERIFICATION_FAILED): SessionState.FAILED,
    (SessionState.INTRO, SessionEvent.START): SessionState.IN_PROGRESS,
    (SessionState.IN_PROGRESS, SessionEvent.ANSWER): SessionState.IN_PROGRESS,
    (SessionState.IN_PROGRESS, SessionEvent.LAST_ANSWER): SessionState.COMPLETED,
    (SessionState.IN_PROGRESS, SessionEvent.TIMEOUT_COMPLETE): SessionState.COMPLETED,
    (SessionState.IN_PROGRESS, SessionEvent.TIMEOUT_FAIL): SessionState.FAILED,
}

# Abandonment is reachable from every non-terminal state
for _state in SessionState:
    if not _state.is_terminal:
        _TRANSITIONS[(_state, SessionEvent.ABANDON)] = SessionState.FAILED


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state reached by applying ``event`` to ``state``."""
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise IllegalTransitionError(
            f"Cannot apply '{event.value}' in state '{state.value}'"
        ) from None


def allowed_events(state: SessionState) -> set[SessionEvent]:
    return {event for (source, event) in _TRANSITIONS if source == state}
