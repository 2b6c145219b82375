"""EscalationPolicy arithmetic — levels and deadlines for unclaimed requests."""

from __future__ import annotations

from datetime import datetime, timedelta

from reqflow.domain.entities.assignment_rule import EscalationLevel, EscalationPolicy
from reqflow.domain.errors import EscalationExhausted


def initial_deadline(policy: EscalationPolicy, assigned_at: datetime) -> datetime:
    return assigned_at + timedelta(hours=policy.timeout_hours)


def next_level(policy: EscalationPolicy, current_level: int) -> EscalationLevel:
    """The level following *current_level* (0 means the initial timeout).

    Raises:
        EscalationExhausted: when no further level is configured.
    """
    index = current_level + 1
    if index > len(policy.levels):
        raise EscalationExhausted(current_level)
    return policy.levels[index - 1]


def next_deadline(level: EscalationLevel, now: datetime, previous_deadline: datetime) -> datetime:
    """Deadline for *level*, always later than *previous_deadline*.

    A scan that runs late starts the clock at *now*; a scan that somehow
    runs early never shortens the window.
    """
    start = max(now, previous_deadline)
    return start + timedelta(hours=level.timeout_hours)
