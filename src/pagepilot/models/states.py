"""Per-request orchestration state machine."""

from enum import Enum


class SessionState(str, Enum):
    """Stages of a single ``execute`` / ``interact_once`` request."""

    INIT = "INIT"
    PROFILE_LOADED = "PROFILE_LOADED"
    CONTEXT_READY = "CONTEXT_READY"
    NAVIGATING = "NAVIGATING"
    CAPTCHA_CHECKED = "CAPTCHA_CHECKED"
    ACTIONS_RUNNING = "ACTIONS_RUNNING"
    EXTRACTING = "EXTRACTING"
    PROFILE_SAVING = "PROFILE_SAVING"
    DONE = "DONE"
    FAILED = "FAILED"


TERMINAL_STATES = {SessionState.DONE, SessionState.FAILED}

# FAILED is reachable from any non-terminal state in addition to these.
STATE_TRANSITIONS: dict[SessionState, list[SessionState]] = {
    SessionState.INIT: [SessionState.PROFILE_LOADED],
    SessionState.PROFILE_LOADED: [SessionState.CONTEXT_READY],
    SessionState.CONTEXT_READY: [SessionState.NAVIGATING],
    SessionState.NAVIGATING: [SessionState.CAPTCHA_CHECKED],
    SessionState.CAPTCHA_CHECKED: [SessionState.ACTIONS_RUNNING],
    # Actions abort straight to extraction on failure.
    SessionState.ACTIONS_RUNNING: [SessionState.EXTRACTING],
    SessionState.EXTRACTING: [SessionState.PROFILE_SAVING],
    SessionState.PROFILE_SAVING: [SessionState.DONE],
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Return True if *target* is a legal next state from *current*."""
    if current in TERMINAL_STATES:
        return False
    if target == SessionState.FAILED:
        return True
    return target in STATE_TRANSITIONS.get(current, [])
