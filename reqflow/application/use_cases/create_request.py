"""CreateRequestUseCase — persist a new request, then try to assign it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.use_cases.assign_request import AssignmentResult, AssignRequestUseCase
from reqflow.domain.entities.activity import ActivityUpdate
from reqflow.domain.entities.request import Request
from reqflow.domain.value_objects.context import RequestContext
from reqflow.domain.value_objects.enums import RequestPriority, RequestStatus, UpdateType

logger = logging.getLogger(__name__)


@dataclass
class NewRequest:
    request_type_id: int
    title: str
    description: str | None = None
    priority: RequestPriority = RequestPriority.MEDIUM
    form_data: dict[str, Any] | None = None


class CreateRequestUseCase:
    def __init__(
        self,
        request_repo: RequestRepository,
        activity_repo: ActivityRepository,
        assign_request: AssignRequestUseCase,
    ):
        self._requests = request_repo
        self._activity = activity_repo
        self._assign = assign_request

    async def execute(
        self, ctx: RequestContext, data: NewRequest
    ) -> tuple[Request, AssignmentResult]:
        """Creation succeeds whenever the insert does; assignment may not."""
        request = await self._requests.save(
            Request(
                id=None,
                organization_id=ctx.organization_id,
                request_type_id=data.request_type_id,
                title=data.title,
                description=data.description,
                priority=data.priority,
                form_data=dict(data.form_data or {}),
                requested_by=ctx.user_id,
                status=RequestStatus.SUBMITTED,
                created_at=ctx.now,
            )
        )
        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request.id,
                author_id=ctx.user_id,
                created_at=ctx.now,
                update_type=UpdateType.CREATED,
                title="Request submitted",
                new_status=RequestStatus.SUBMITTED,
            )
        )
        logger.info("Request %s created by %s", request.id, ctx.user_id)

        result = await self._assign.execute(request, ctx.now)
        return request, result
