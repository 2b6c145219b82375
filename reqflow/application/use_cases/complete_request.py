"""CompleteRequestUseCase — the acceptor closes out their request."""

from __future__ import annotations

import logging

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.services.notifications import notify_safely
from reqflow.application.use_cases.accept_request import load_request
from reqflow.application.use_cases.escalate import EscalationService
from reqflow.domain.entities.activity import ActivityUpdate
from reqflow.domain.entities.request import Request
from reqflow.domain.errors import InvalidTransition, NotAcceptor
from reqflow.domain.value_objects.context import RequestContext
from reqflow.domain.value_objects.enums import RequestStatus, UpdateType

logger = logging.getLogger(__name__)


class CompleteRequestUseCase:
    def __init__(
        self,
        request_repo: RequestRepository,
        activity_repo: ActivityRepository,
        escalation: EscalationService,
        notifier: NotificationPort,
    ):
        self._requests = request_repo
        self._activity = activity_repo
        self._escalation = escalation
        self._notifier = notifier

    async def execute(
        self, ctx: RequestContext, request_id: int, notes: str | None = None
    ) -> Request:
        """Complete an in-progress request.

        Repeating the call as the acceptor of an already completed request
        returns it unchanged and writes nothing.
        """
        request = await load_request(self._requests, ctx, request_id)
        user_id = ctx.user_id

        if request.status == RequestStatus.COMPLETED and request.accepted_by == user_id:
            return request
        if request.status != RequestStatus.IN_PROGRESS:
            raise InvalidTransition(request.status.value, "complete")
        # accepted_by is always set while in progress
        if request.accepted_by != user_id:
            raise NotAcceptor(request_id, user_id)

        if not await self._requests.try_complete(request_id, user_id, ctx.now, notes):
            current = await load_request(self._requests, ctx, request_id)
            if current.status == RequestStatus.COMPLETED and current.accepted_by == user_id:
                return current
            raise InvalidTransition(current.status.value, "complete")

        await self._escalation.deregister(request_id)

        request.status = RequestStatus.COMPLETED
        request.completed_at = ctx.now
        request.completion_notes = notes

        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request_id,
                author_id=user_id,
                created_at=ctx.now,
                update_type=UpdateType.COMPLETED,
                title="Request completed",
                content=notes,
                old_status=RequestStatus.IN_PROGRESS,
                new_status=RequestStatus.COMPLETED,
            )
        )
        logger.info("Request %s completed by %s", request_id, user_id)

        await notify_safely(self._notifier.on_completed(request), "OnCompleted", request_id)
        return request
