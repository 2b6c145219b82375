"""Analytics endpoints — assignment volume and response times."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from reqflow.application.use_cases.assignment_metrics import AssignmentMetricsUseCase
from reqflow.domain.value_objects.context import RequestContext
from reqflow.infrastructure.api.dependencies import get_metrics_uc, get_request_context

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/assignments")
async def assignment_metrics(
    ctx: RequestContext = Depends(get_request_context),
    metrics_uc: AssignmentMetricsUseCase = Depends(get_metrics_uc),
):
    m = await metrics_uc.execute(ctx)
    return {
        "window_days": m.window_days,
        "total_assignments": m.total_assignments,
        "accepted": m.accepted,
        "avg_response_time_hours": m.avg_response_time_hours,
        "by_rule": [
            {"rule_id": rule_id, "assignment_count": count}
            for rule_id, count in sorted(m.by_rule.items())
        ],
        "trend": [
            {
                "date": d.day.isoformat(),
                "assignments": d.assignments,
                "avg_response_time": d.avg_response_time_hours,
            }
            for d in m.trend
        ],
    }
