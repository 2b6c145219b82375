"""Tests for escalation level and deadline arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from reqflow.domain.entities.assignment_rule import EscalationLevel, EscalationPolicy
from reqflow.domain.errors import EscalationExhausted
from reqflow.domain.policies.escalation import initial_deadline, next_deadline, next_level

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

POLICY = EscalationPolicy(
    timeout_hours=2,
    levels=(
        EscalationLevel(1, ("admin",), 4),
        EscalationLevel(2, ("superadmin",), 24),
    ),
)


def test_initial_deadline():
    assert initial_deadline(POLICY, T0) == T0 + timedelta(hours=2)


def test_fractional_timeout():
    assert initial_deadline(EscalationPolicy(timeout_hours=0.5), T0) == T0 + timedelta(minutes=30)


def test_levels_advance_one_at_a_time():
    assert next_level(POLICY, 0).level == 1
    assert next_level(POLICY, 1).level == 2


def test_exhausted_after_last_level():
    with pytest.raises(EscalationExhausted) as exc_info:
        next_level(POLICY, 2)
    assert exc_info.value.level == 2


def test_no_levels_exhausts_immediately():
    with pytest.raises(EscalationExhausted):
        next_level(EscalationPolicy(timeout_hours=1), 0)


def test_next_deadline_counts_from_previous_deadline():
    level = POLICY.levels[0]
    prev = T0 + timedelta(hours=2)
    assert next_deadline(level, prev, prev) == prev + timedelta(hours=4)


def test_late_scan_counts_from_now():
    level = POLICY.levels[0]
    prev = T0 + timedelta(hours=2)
    late = prev + timedelta(minutes=45)
    assert next_deadline(level, late, prev) == late + timedelta(hours=4)


def test_deadline_never_moves_backwards():
    level = POLICY.levels[0]
    prev = T0 + timedelta(hours=2)
    early = T0
    assert next_deadline(level, early, prev) > prev
