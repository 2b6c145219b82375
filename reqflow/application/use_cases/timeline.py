"""Timeline use cases — read the merged activity feed, add comments."""

from __future__ import annotations

import logging

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.use_cases.accept_request import load_request
from reqflow.domain.entities.activity import ActivityComment, ActivityEntry
from reqflow.domain.policies.timeline import merge_timeline
from reqflow.domain.value_objects.context import RequestContext

logger = logging.getLogger(__name__)


class GetTimelineUseCase:
    def __init__(self, request_repo: RequestRepository, activity_repo: ActivityRepository):
        self._requests = request_repo
        self._activity = activity_repo

    async def execute(
        self, ctx: RequestContext, request_id: int, include_internal: bool = True
    ) -> list[ActivityEntry]:
        await load_request(self._requests, ctx, request_id)
        updates = await self._activity.list_updates(request_id)
        comments = await self._activity.list_comments(request_id)
        return merge_timeline(updates, comments, include_internal=include_internal)


class AddCommentUseCase:
    """Comments are allowed in every status, closed requests included."""

    def __init__(self, request_repo: RequestRepository, activity_repo: ActivityRepository):
        self._requests = request_repo
        self._activity = activity_repo

    async def execute(
        self, ctx: RequestContext, request_id: int, content: str, is_internal: bool = False
    ) -> ActivityComment:
        await load_request(self._requests, ctx, request_id)
        comment = await self._activity.add_comment(
            ActivityComment(
                id=None,
                request_id=request_id,
                author_id=ctx.user_id,
                created_at=ctx.now,
                content=content,
                is_internal=is_internal,
            )
        )
        logger.info("Request %s: comment by %s", request_id, ctx.user_id)
        return comment
