"""Request endpoints — create, accept, complete, cancel, timeline."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reqflow.adapters.notifications.deferred_notifier import DeferredNotifier
from reqflow.adapters.persistence.database import get_session
from reqflow.adapters.persistence.repositories import SqlRequestRepository
from reqflow.application.use_cases.accept_request import AcceptRequestUseCase, load_request
from reqflow.application.use_cases.assign_request import AssignmentResult, BatchAssignUseCase
from reqflow.application.use_cases.cancel_request import CancelRequestUseCase
from reqflow.application.use_cases.complete_request import CompleteRequestUseCase
from reqflow.application.use_cases.create_request import CreateRequestUseCase, NewRequest
from reqflow.application.use_cases.timeline import AddCommentUseCase, GetTimelineUseCase
from reqflow.domain.errors import AlreadyAccepted, EngineError
from reqflow.domain.value_objects.context import RequestContext
from reqflow.domain.value_objects.enums import RequestPriority
from reqflow.infrastructure.api.dependencies import (
    get_accept_request_uc,
    get_add_comment_uc,
    get_batch_assign_uc,
    get_cancel_request_uc,
    get_complete_request_uc,
    get_create_request_uc,
    get_outbox,
    get_request_context,
    get_request_repo,
    get_timeline_uc,
)
from reqflow.infrastructure.api.errors import to_http
from reqflow.infrastructure.api.serializers import serialize_entry, serialize_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


class CreateRequestBody(BaseModel):
    request_type_id: int
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    priority: RequestPriority = RequestPriority.MEDIUM
    form_data: dict[str, Any] = Field(default_factory=dict)


class CompleteBody(BaseModel):
    notes: str | None = None


class CancelBody(BaseModel):
    reason: str | None = None


class CommentBody(BaseModel):
    content: str = Field(min_length=1)
    is_internal: bool = False


def _assignment_to_dict(result: AssignmentResult) -> dict:
    return {
        "outcome": result.outcome.value,
        "candidates": result.candidates,
        "rule_id": result.rule_id,
        "strategy": result.strategy.value if result.strategy else None,
        "reason": result.reason,
    }


@router.post("")
async def create_request(
    body: CreateRequestBody,
    ctx: RequestContext = Depends(get_request_context),
    create_uc: CreateRequestUseCase = Depends(get_create_request_uc),
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
):
    """Submit a request and try to route it right away."""
    request, result = await create_uc.execute(
        ctx,
        NewRequest(
            request_type_id=body.request_type_id,
            title=body.title,
            description=body.description,
            priority=body.priority,
            form_data=body.form_data,
        ),
    )
    await session.commit()
    await outbox.flush()
    return {
        "status": "ok",
        "request": serialize_request(request),
        "assignment": _assignment_to_dict(result),
    }


@router.post("/assign-pending")
async def assign_pending(
    ctx: RequestContext = Depends(get_request_context),
    batch_uc: BatchAssignUseCase = Depends(get_batch_assign_uc),
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
):
    """Retry routing for submitted requests that are still unassigned."""
    results = await batch_uc.execute(ctx.organization_id, ctx.now)
    await session.commit()
    await outbox.flush()
    return {
        "status": "ok",
        "total_processed": len(results),
        "results": [{"request_id": r.request_id, **_assignment_to_dict(r)} for r in results],
    }


@router.get("/{request_id}")
async def get_request(
    request_id: int,
    ctx: RequestContext = Depends(get_request_context),
    repo: SqlRequestRepository = Depends(get_request_repo),
):
    try:
        request = await load_request(repo, ctx, request_id)
    except EngineError as exc:
        raise to_http(exc)
    return serialize_request(request)


@router.post("/{request_id}/accept")
async def accept_request(
    request_id: int,
    ctx: RequestContext = Depends(get_request_context),
    accept_uc: AcceptRequestUseCase = Depends(get_accept_request_uc),
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
):
    """First candidate to call this owns the request."""
    try:
        request = await accept_uc.execute(ctx, request_id)
    except AlreadyAccepted as exc:
        return JSONResponse(
            status_code=409,
            content={"status": "already_accepted", "accepted_by": exc.by},
        )
    except EngineError as exc:
        raise to_http(exc)
    await session.commit()
    await outbox.flush()
    return {"status": "accepted", "request": serialize_request(request)}


@router.post("/{request_id}/complete")
async def complete_request(
    request_id: int,
    body: CompleteBody | None = None,
    ctx: RequestContext = Depends(get_request_context),
    complete_uc: CompleteRequestUseCase = Depends(get_complete_request_uc),
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
):
    try:
        request = await complete_uc.execute(ctx, request_id, body.notes if body else None)
    except EngineError as exc:
        raise to_http(exc)
    await session.commit()
    await outbox.flush()
    return {"status": "completed", "request": serialize_request(request)}


@router.post("/{request_id}/cancel")
async def cancel_request(
    request_id: int,
    body: CancelBody | None = None,
    ctx: RequestContext = Depends(get_request_context),
    cancel_uc: CancelRequestUseCase = Depends(get_cancel_request_uc),
    session: AsyncSession = Depends(get_session),
):
    try:
        request = await cancel_uc.execute(ctx, request_id, body.reason if body else None)
    except EngineError as exc:
        raise to_http(exc)
    await session.commit()
    return {"status": "cancelled", "request": serialize_request(request)}


@router.get("/{request_id}/timeline")
async def get_timeline(
    request_id: int,
    include_internal: bool = True,
    ctx: RequestContext = Depends(get_request_context),
    timeline_uc: GetTimelineUseCase = Depends(get_timeline_uc),
):
    """Updates and comments in one chronological list."""
    try:
        entries = await timeline_uc.execute(ctx, request_id, include_internal=include_internal)
    except EngineError as exc:
        raise to_http(exc)
    return {"request_id": request_id, "total": len(entries), "entries": [serialize_entry(e) for e in entries]}


@router.post("/{request_id}/comments")
async def add_comment(
    request_id: int,
    body: CommentBody,
    ctx: RequestContext = Depends(get_request_context),
    comment_uc: AddCommentUseCase = Depends(get_add_comment_uc),
    session: AsyncSession = Depends(get_session),
):
    try:
        comment = await comment_uc.execute(ctx, request_id, body.content, body.is_internal)
    except EngineError as exc:
        raise to_http(exc)
    await session.commit()
    return serialize_entry(comment)
