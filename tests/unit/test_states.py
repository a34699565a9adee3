import pytest
from src.domain.errors import IllegalTransitionError
from src.domain.states import SessionEvent, SessionState, allowed_events, transition


def test_happy_path_reaches_completed() -> None:
    state = SessionState.UNINITIALIZED
    for event in (
        SessionEvent.VERIFY,
        SessionEvent.VERIFIED,
        SessionEvent.START,
        SessionEvent.ANSWER,
        SessionEvent.LAST_ANSWER,
    ):
        state = transition(state, event)

    assert state is SessionState.COMPLETED
    assert state.is_terminal


def test_verification_failure_is_terminal() -> None:
    state = transition(SessionState.VERIFYING, SessionEvent.VERIFICATION_FAILED)

    assert state is SessionState.FAILED
    assert allowed_events(state) == set()


@pytest.mark.parametrize(
    "state",
    [SessionState.UNINITIALIZED, SessionState.VERIFYING, SessionState.INTRO, SessionState.IN_PROGRESS],
)
def test_abandon_is_allowed_from_every_non_terminal_state(state: SessionState) -> None:
    assert transition(state, SessionEvent.ABANDON) is SessionState.FAILED


@pytest.mark.parametrize("state", [SessionState.COMPLETED, SessionState.FAILED])
def test_terminal_states_reject_every_event(state: SessionState) -> None:
    for event in SessionEvent:
        with pytest.raises(IllegalTransitionError):
            transition(state, event)


def test_answer_requires_in_progress() -> None:
    with pytest.raises(IllegalTransitionError, match="answer"):
        transition(SessionState.INTRO, SessionEvent.ANSWER)


def test_timeout_policies_map_to_different_terminal_states() -> None:
    assert transition(SessionState.IN_PROGRESS, SessionEvent.TIMEOUT_COMPLETE) is SessionState.COMPLETED
    assert transition(SessionState.IN_PROGRESS, SessionEvent.TIMEOUT_FAIL) is SessionState.FAILED
