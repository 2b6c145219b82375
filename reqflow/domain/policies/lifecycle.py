"""LifecyclePolicy — the legal request status transitions."""

from __future__ import annotations

from reqflow.domain.errors import InvalidTransition
from reqflow.domain.value_objects.enums import TERMINAL_STATUSES, RequestStatus

_FORWARD = {
    RequestStatus.SUBMITTED: RequestStatus.UNDER_REVIEW,
    RequestStatus.UNDER_REVIEW: RequestStatus.IN_PROGRESS,
    RequestStatus.IN_PROGRESS: RequestStatus.COMPLETED,
}

_ACTIONS = {
    RequestStatus.UNDER_REVIEW: "assign",
    RequestStatus.IN_PROGRESS: "accept",
    RequestStatus.COMPLETED: "complete",
    RequestStatus.CANCELLED: "cancel",
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    if target == RequestStatus.CANCELLED:
        return current not in TERMINAL_STATUSES
    return _FORWARD.get(current) == target


def ensure_transition(current: RequestStatus, target: RequestStatus) -> None:
    """Raise InvalidTransition unless *current* may move to *target*.

    Pure check; callers perform the write themselves.
    """
    if not can_transition(current, target):
        raise InvalidTransition(current.value, _ACTIONS.get(target, target.value))
