"""Microphone permission tracking.

Runs independently of the session phases. The host reports what the user did
with a permission prompt; ``CHECK`` re-reads the real permission through the
injected checker, which also catches permissions revoked or re-granted outside
the app.
"""

import logging
from collections.abc import Callable
from enum import Enum

from inkmic.utils.store import StateStore

logger = logging.getLogger(__name__)

RECORD_AUDIO = "RECORD_AUDIO"
RATIONALE = "Microphone access is needed to stream audio to the receiver."


class PermissionState(Enum):
    INITIAL = "initial"
    GRANTED = "granted"
    NOT_REQUESTED = "not_requested"
    REQUESTING = "requesting"
    RATIONALE_NEEDED = "rationale_needed"
    PERMANENTLY_DENIED = "permanently_denied"


class PermissionAction(Enum):
    CHECK = "check"
    REQUEST = "request"
    USER_ACKNOWLEDGES_RATIONALE = "user_acknowledges_rationale"
    USER_GRANTS = "user_grants"
    USER_DENIES = "user_denies"  # Denied, but the prompt may be shown again
    USER_DENIES_PERMANENTLY = "user_denies_permanently"


# State -> (next state if the checker says granted, next state otherwise)
CHECK_TRANSITIONS: dict[PermissionState, tuple[PermissionState, PermissionState]] = {
    PermissionState.INITIAL: (PermissionState.GRANTED, PermissionState.NOT_REQUESTED),
    PermissionState.GRANTED: (PermissionState.GRANTED, PermissionState.RATIONALE_NEEDED),
    PermissionState.PERMANENTLY_DENIED: (
        PermissionState.GRANTED,
        PermissionState.PERMANENTLY_DENIED,
    ),
}

ACTION_TRANSITIONS: dict[tuple[PermissionState, PermissionAction], PermissionState] = {
    (PermissionState.NOT_REQUESTED, PermissionAction.REQUEST): PermissionState.REQUESTING,
    (PermissionState.REQUESTING, PermissionAction.USER_GRANTS): PermissionState.GRANTED,
    (PermissionState.REQUESTING, PermissionAction.USER_DENIES): PermissionState.RATIONALE_NEEDED,
    (
        PermissionState.REQUESTING,
        PermissionAction.USER_DENIES_PERMANENTLY,
    ): PermissionState.PERMANENTLY_DENIED,
    (
        PermissionState.RATIONALE_NEEDED,
        PermissionAction.USER_ACKNOWLEDGES_RATIONALE,
    ): PermissionState.REQUESTING,
}


class PermissionStateMachine:
    """Explicit transition-table state machine for one runtime permission."""

    def __init__(self, checker: Callable[[], bool], permission: str = RECORD_AUDIO) -> None:
        self.checker = checker
        self.permission = permission
        self.rationale = RATIONALE
        self.state = StateStore(PermissionState.INITIAL)

    @property
    def current(self) -> PermissionState:
        return self.state.value

    def dispatch(self, action: PermissionAction) -> PermissionState:
        """Apply ``action`` and return the resulting state.

        Actions that have no transition from the current state are ignored.
        """
        current = self.state.value
        if action is PermissionAction.CHECK and current in CHECK_TRANSITIONS:
            if_granted, if_denied = CHECK_TRANSITIONS[current]
            target = if_granted if self.checker() else if_denied
        else:
            target = ACTION_TRANSITIONS.get((current, action))

        if target is None:
            logger.debug("Ignoring %s in permission state %s", action.name, current.name)
            return current
        if target is not current:
            logger.debug("Permission %s: %s -> %s", self.permission, current.name, target.name)
            self.state.set(target)
        return target
