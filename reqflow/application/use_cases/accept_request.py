"""AcceptRequestUseCase — first candidate to accept becomes the owner."""

from __future__ import annotations

import logging

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.services.notifications import notify_safely
from reqflow.application.use_cases.escalate import EscalationService
from reqflow.domain.entities.activity import ActivityUpdate
from reqflow.domain.entities.request import Request
from reqflow.domain.errors import (
    AlreadyAccepted,
    InvalidTransition,
    NotACandidate,
    RequestNotFound,
)
from reqflow.domain.value_objects.context import RequestContext
from reqflow.domain.value_objects.enums import RequestStatus, UpdateType

logger = logging.getLogger(__name__)


async def load_request(
    request_repo: RequestRepository, ctx: RequestContext, request_id: int
) -> Request:
    """Fetch a request visible to the caller's organization."""
    request = await request_repo.get_by_id(request_id)
    if request is None or request.organization_id != ctx.organization_id:
        raise RequestNotFound(request_id)
    return request


class AcceptRequestUseCase:
    """Acceptance arbiter.

    The winner is decided by a single conditional write on ``accepted_by``;
    the checks before it only produce friendlier errors and never decide
    the race.
    """

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

    async def execute(self, ctx: RequestContext, request_id: int) -> Request:
        """Accept *request_id* on behalf of ``ctx.user_id``.

        Raises:
            RequestNotFound: unknown id or another organization's request.
            AlreadyAccepted: somebody else won; carries the winner.
            InvalidTransition: the request is not under review.
            NotACandidate: the caller is not in the candidate pool.
        """
        request = await load_request(self._requests, ctx, request_id)
        user_id = ctx.user_id

        if request.accepted_by:
            raise AlreadyAccepted(request_id, request.accepted_by)
        if request.status != RequestStatus.UNDER_REVIEW:
            raise InvalidTransition(request.status.value, "accept")
        if user_id not in request.assigned_to:
            raise NotACandidate(request_id, user_id)

        if not await self._requests.try_accept(request_id, user_id, ctx.now):
            current = await load_request(self._requests, ctx, request_id)
            if current.accepted_by:
                logger.info(
                    "Request %s: %s lost acceptance to %s", request_id, user_id, current.accepted_by
                )
                raise AlreadyAccepted(request_id, current.accepted_by)
            raise InvalidTransition(current.status.value, "accept")

        await self._escalation.deregister(request_id)

        old_status = request.status
        request.status = RequestStatus.IN_PROGRESS
        request.accepted_by = user_id
        request.accepted_at = ctx.now

        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request_id,
                author_id=user_id,
                created_at=ctx.now,
                update_type=UpdateType.ACCEPTED,
                title="Request accepted",
                old_status=old_status,
                new_status=RequestStatus.IN_PROGRESS,
            )
        )
        logger.info("Request %s accepted by %s", request_id, user_id)

        await notify_safely(self._notifier.on_accepted(request, user_id), "OnAccepted", request_id)
        others = request.assigned_to.difference([user_id]).to_list()
        if others:
            await notify_safely(
                self._notifier.on_offers_withdrawn(request, others),
                "OnOffersWithdrawn", request_id,
            )
        return request
