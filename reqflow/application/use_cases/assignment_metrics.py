"""AssignmentMetricsUseCase — volume and response times of recent assignments."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta

from reqflow.application.ports.request_repo import RequestRepository
from reqflow.domain.entities.request import Request
from reqflow.domain.value_objects.context import RequestContext

TREND_DAYS = 7


@dataclass
class DailyAssignments:
    day: date
    assignments: int
    avg_response_time_hours: float


@dataclass
class AssignmentMetrics:
    window_days: int
    total_assignments: int
    accepted: int
    avg_response_time_hours: float
    by_rule: dict[int, int] = field(default_factory=dict)
    trend: list[DailyAssignments] = field(default_factory=list)


def _response_hours(requests: list[Request]) -> float:
    """Mean hours from assignment to acceptance over accepted requests."""
    hours = [
        (r.accepted_at - r.assigned_at).total_seconds() / 3600
        for r in requests
        if r.accepted_at is not None and r.assigned_at is not None
    ]
    return round(sum(hours) / len(hours), 2) if hours else 0.0


class AssignmentMetricsUseCase:
    def __init__(self, request_repo: RequestRepository, window_days: int = 30):
        self._requests = request_repo
        self._window_days = window_days

    async def execute(self, ctx: RequestContext) -> AssignmentMetrics:
        since = ctx.now - timedelta(days=self._window_days)
        assigned = await self._requests.get_assigned_since(ctx.organization_id, since)

        by_rule = Counter(r.matched_rule_id for r in assigned if r.matched_rule_id is not None)

        trend = []
        today = ctx.now.date()
        for offset in range(TREND_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            on_day = [r for r in assigned if r.assigned_at and r.assigned_at.date() == day]
            trend.append(
                DailyAssignments(
                    day=day,
                    assignments=len(on_day),
                    avg_response_time_hours=_response_hours(on_day),
                )
            )

        return AssignmentMetrics(
            window_days=self._window_days,
            total_assignments=len(assigned),
            accepted=sum(1 for r in assigned if r.accepted_at is not None),
            avg_response_time_hours=_response_hours(assigned),
            by_rule=dict(by_rule),
            trend=trend,
        )
