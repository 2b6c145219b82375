"""Logging notifier — used when no webhook is configured."""

from __future__ import annotations

import logging

from reqflow.application.ports.notification_port import NotificationPort
from reqflow.domain.entities.request import Request

logger = logging.getLogger(__name__)


class LoggingNotifier(NotificationPort):
    async def on_assigned(self, request: Request, candidates: list[str]) -> None:
        logger.info("Request %s offered to %s", request.id, ", ".join(candidates))

    async def on_escalated(self, request: Request, new_candidates: list[str], level: int) -> None:
        logger.info(
            "Request %s escalated to level %d, now also offered to %s",
            request.id, level, ", ".join(new_candidates),
        )

    async def on_accepted(self, request: Request, user_id: str) -> None:
        logger.info("Request %s is yours, %s", request.id, user_id)

    async def on_offers_withdrawn(self, request: Request, user_ids: list[str]) -> None:
        logger.info("Request %s withdrawn from %s", request.id, ", ".join(user_ids))

    async def on_completed(self, request: Request) -> None:
        logger.info("Request %s completed; informing %s", request.id, request.requested_by)

    async def on_admin_alert(self, request: Request, recipients: list[str], reason: str) -> None:
        logger.warning(
            "ADMIN ALERT for request %s (%s) → %s",
            request.id, reason, ", ".join(recipients) or "no admins on record",
        )

    async def aclose(self) -> None:
        return None
