"""CancelRequestUseCase — withdraw a request that is still open."""

from __future__ import annotations

import logging

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.use_cases.accept_request import load_request
from reqflow.application.use_cases.escalate import EscalationService
from reqflow.domain.entities.activity import ActivityUpdate
from reqflow.domain.entities.request import Request
from reqflow.domain.errors import InvalidTransition
from reqflow.domain.policies.lifecycle import ensure_transition
from reqflow.domain.value_objects.context import RequestContext
from reqflow.domain.value_objects.enums import RequestStatus, UpdateType

logger = logging.getLogger(__name__)


class CancelRequestUseCase:
    def __init__(
        self,
        request_repo: RequestRepository,
        activity_repo: ActivityRepository,
        escalation: EscalationService,
    ):
        self._requests = request_repo
        self._activity = activity_repo
        self._escalation = escalation

    async def execute(
        self, ctx: RequestContext, request_id: int, reason: str | None = None
    ) -> Request:
        request = await load_request(self._requests, ctx, request_id)
        if request.status == RequestStatus.CANCELLED:
            return request
        ensure_transition(request.status, RequestStatus.CANCELLED)

        if not await self._requests.try_cancel(request_id, ctx.now):
            current = await load_request(self._requests, ctx, request_id)
            if current.status == RequestStatus.CANCELLED:
                return current
            raise InvalidTransition(current.status.value, "cancel")

        await self._escalation.deregister(request_id)

        old_status = request.status
        request.status = RequestStatus.CANCELLED
        request.accepted_by = None
        request.accepted_at = None

        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request_id,
                author_id=ctx.user_id,
                created_at=ctx.now,
                update_type=UpdateType.CANCELLED,
                title="Request cancelled",
                content=reason,
                old_status=old_status,
                new_status=RequestStatus.CANCELLED,
            )
        )
        logger.info("Request %s cancelled by %s (was %s)", request_id, ctx.user_id, old_status.value)
        return request
