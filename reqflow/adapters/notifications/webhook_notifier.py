"""Webhook notifier — implements NotificationPort over HTTP POST."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from reqflow.application.ports.notification_port import NotificationPort
from reqflow.config import settings
from reqflow.domain.entities.request import Request

logger = logging.getLogger(__name__)


def _request_payload(request: Request) -> dict[str, Any]:
    return {
        "request_id": request.id,
        "organization_id": request.organization_id,
        "request_type_id": request.request_type_id,
        "title": request.title,
        "priority": request.priority.value,
        "status": request.status.value,
    }


class WebhookNotifier(NotificationPort):
    """Posts ``{"event": ..., "request_id": ..., ...}`` to a webhook.

    Every delivery runs as a background task, so the caller returns as
    soon as the task is scheduled. Failures are logged and dropped.
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = url or settings.notification_webhook_url
        self._timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    async def on_assigned(self, request: Request, candidates: list[str]) -> None:
        self._dispatch("request.assigned", request, recipients=candidates)

    async def on_escalated(self, request: Request, new_candidates: list[str], level: int) -> None:
        self._dispatch("request.escalated", request, recipients=new_candidates, level=level)

    async def on_accepted(self, request: Request, user_id: str) -> None:
        self._dispatch("request.accepted", request, recipients=[user_id], accepted_by=user_id)

    async def on_offers_withdrawn(self, request: Request, user_ids: list[str]) -> None:
        self._dispatch("request.offers_withdrawn", request, recipients=user_ids)

    async def on_completed(self, request: Request) -> None:
        self._dispatch(
            "request.completed", request,
            recipients=[request.requested_by], completed_by=request.accepted_by,
        )

    async def on_admin_alert(self, request: Request, recipients: list[str], reason: str) -> None:
        self._dispatch("request.admin_alert", request, recipients=recipients, reason=reason)

    async def aclose(self) -> None:
        """Wait for in-flight deliveries (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _dispatch(self, event: str, request: Request, **extra: Any) -> None:
        payload = {"event": event, **_request_payload(request), **extra}
        task = asyncio.create_task(self._post(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(self._url, json=payload, timeout=self._timeout)
                response.raise_for_status()
            logger.debug("Delivered %s for request %s", payload["event"], payload["request_id"])
        except Exception:
            logger.exception(
                "Webhook delivery of %s failed for request %s",
                payload["event"], payload["request_id"],
            )
