"""
Progress state machine.

States: not_started, in_progress, completed, blocked, failed.

Automatic events (ACCESS, COMPLETE, EXHAUST_ATTEMPTS) come from learner
activity and never leave a terminal state (completed, blocked, failed).
Administrative events (BLOCK, UNBLOCK, RESET) are explicit overrides and
raise InvalidStateTransitionError when they do not apply.
"""
from __future__ import annotations

from enum import Enum

from waypoint.errors import InvalidStateTransitionError
from waypoint.progress.models import ProgressStatus


class ProgressEvent(str, Enum):
    ACCESS = "access"
    COMPLETE = "complete"
    EXHAUST_ATTEMPTS = "exhaust_attempts"
    BLOCK = "block"
    UNBLOCK = "unblock"
    RESET = "reset"


AUTOMATIC_EVENTS = frozenset({
    ProgressEvent.ACCESS,
    ProgressEvent.COMPLETE,
    ProgressEvent.EXHAUST_ATTEMPTS,
})

TERMINAL_STATES = frozenset({
    ProgressStatus.COMPLETED,
    ProgressStatus.BLOCKED,
    ProgressStatus.FAILED,
})

_AUTOMATIC_TRANSITIONS: dict[tuple[ProgressStatus, ProgressEvent], ProgressStatus] = {
    (ProgressStatus.NOT_STARTED, ProgressEvent.ACCESS): ProgressStatus.IN_PROGRESS,
    (ProgressStatus.IN_PROGRESS, ProgressEvent.ACCESS): ProgressStatus.IN_PROGRESS,
    (ProgressStatus.IN_PROGRESS, ProgressEvent.COMPLETE): ProgressStatus.COMPLETED,
    (ProgressStatus.IN_PROGRESS, ProgressEvent.EXHAUST_ATTEMPTS): ProgressStatus.FAILED,
}


def apply_event(current: ProgressStatus, event: ProgressEvent) -> ProgressStatus:
    """
    Return the status after ``event``.

    A not-started record receiving COMPLETE or EXHAUST_ATTEMPTS passes
    through in_progress first, so the first report can finish content.
    """
    if event in AUTOMATIC_EVENTS:
        if current in TERMINAL_STATES:
            return current
        if current is ProgressStatus.NOT_STARTED and event is not ProgressEvent.ACCESS:
            current = ProgressStatus.IN_PROGRESS
        return _AUTOMATIC_TRANSITIONS[(current, event)]

    if event is ProgressEvent.BLOCK:
        if current is ProgressStatus.BLOCKED:
            raise InvalidStateTransitionError(current.value, event.value, "content is already blocked")
        return ProgressStatus.BLOCKED

    if event is ProgressEvent.UNBLOCK:
        if current is not ProgressStatus.BLOCKED:
            raise InvalidStateTransitionError(current.value, event.value, "content is not blocked")
        return ProgressStatus.IN_PROGRESS

    if event is ProgressEvent.RESET:
        if current is not ProgressStatus.FAILED:
            raise InvalidStateTransitionError(current.value, event.value, "only failed content can be reset")
        return ProgressStatus.IN_PROGRESS

    raise InvalidStateTransitionError(current.value, str(event))
