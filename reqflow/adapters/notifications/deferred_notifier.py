"""Deferred notifier — holds notifications until the transaction commits."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.services.notifications import notify_safely
from reqflow.domain.entities.request import Request

logger = logging.getLogger(__name__)


class DeferredNotifier(NotificationPort):
    """Queues calls for *target*; ``flush`` after commit, ``discard`` after rollback.

    One instance per unit of work. Use cases talk to it like any other
    notifier, so a transition that never commits never reaches anybody.
    """

    def __init__(self, target: NotificationPort):
        self._target = target
        self._pending: list[tuple[str, int | None, Callable[[], Awaitable[None]]]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _defer(self, event: str, request: Request, call: Callable[[], Awaitable[None]]) -> None:
        self._pending.append((event, request.id, call))

    async def on_assigned(self, request: Request, candidates: list[str]) -> None:
        self._defer("OnAssigned", request, lambda: self._target.on_assigned(request, candidates))

    async def on_escalated(self, request: Request, new_candidates: list[str], level: int) -> None:
        self._defer(
            "OnEscalated", request,
            lambda: self._target.on_escalated(request, new_candidates, level),
        )

    async def on_accepted(self, request: Request, user_id: str) -> None:
        self._defer("OnAccepted", request, lambda: self._target.on_accepted(request, user_id))

    async def on_offers_withdrawn(self, request: Request, user_ids: list[str]) -> None:
        self._defer(
            "OnOffersWithdrawn", request,
            lambda: self._target.on_offers_withdrawn(request, user_ids),
        )

    async def on_completed(self, request: Request) -> None:
        self._defer("OnCompleted", request, lambda: self._target.on_completed(request))

    async def on_admin_alert(self, request: Request, recipients: list[str], reason: str) -> None:
        self._defer(
            "OnAdminAlert", request,
            lambda: self._target.on_admin_alert(request, recipients, reason),
        )

    async def flush(self) -> int:
        """Deliver everything queued, in order. Returns the number sent."""
        pending, self._pending = self._pending, []
        for event, request_id, call in pending:
            await notify_safely(call(), event, request_id)
        return len(pending)

    def discard(self) -> None:
        if self._pending:
            logger.info("Dropping %d notifications of a rolled back transaction", len(self._pending))
        self._pending = []
