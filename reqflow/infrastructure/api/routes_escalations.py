"""Escalation endpoints — manual scan and the needs-a-human list."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reqflow.adapters.notifications.deferred_notifier import DeferredNotifier
from reqflow.adapters.persistence.database import get_session
from reqflow.application.use_cases.escalate import EscalationService, ListExhaustedUseCase
from reqflow.domain.value_objects.context import RequestContext
from reqflow.infrastructure.api.dependencies import (
    get_escalation_service,
    get_list_exhausted_uc,
    get_outbox,
    get_request_context,
)
from reqflow.infrastructure.api.serializers import serialize_request, serialize_ticket
from reqflow.infrastructure.scheduler.escalation_scheduler import generate_worker_id

router = APIRouter(prefix="/escalations", tags=["escalations"])


@router.get("/exhausted")
async def list_exhausted(
    ctx: RequestContext = Depends(get_request_context),
    list_uc: ListExhaustedUseCase = Depends(get_list_exhausted_uc),
):
    """Requests whose escalation chain ran out without an acceptance."""
    rows = await list_uc.execute(ctx.organization_id)
    return {
        "total": len(rows),
        "items": [
            {"ticket": serialize_ticket(t), "request": serialize_request(r)} for t, r in rows
        ],
    }


@router.post("/run")
async def run_escalations(
    ctx: RequestContext = Depends(get_request_context),
    service: EscalationService = Depends(get_escalation_service),
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
):
    """Run one escalation scan now instead of waiting for the scheduler."""
    summary = await service.process_due(ctx.now, generate_worker_id("api"))
    await session.commit()
    await outbox.flush()
    return {
        "status": "ok",
        "scanned": summary.scanned,
        "escalated": summary.escalated,
        "exhausted": summary.exhausted,
        "dropped": summary.dropped,
        "skipped": summary.skipped,
        "failed": summary.failed,
    }
