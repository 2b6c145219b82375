"""Escalation scheduler — periodic scan over persisted escalation deadlines.

Runs inside the API process or standalone. Every instance scans the same
table; the optimistic claim on each ticket makes sure only one of them
escalates a given request per deadline.
"""

from __future__ import annotations

import logging
import os
import socket
import uuid
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reqflow.adapters.notifications.deferred_notifier import DeferredNotifier
from reqflow.adapters.persistence.database import async_session_factory
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.use_cases.escalate import EscalationRunSummary, EscalationService
from reqflow.config import settings
from reqflow.domain.errors import SchedulerClaimConflict
from reqflow.domain.value_objects.context import utc_now
from reqflow.infrastructure.api.dependencies import (
    build_escalation_service,
    notifier as default_notifier,
)

logger = logging.getLogger(__name__)

JOB_ID = "escalate_due_requests"


def generate_worker_id(prefix: str | None = None) -> str:
    """hostname-pid-random, recorded on every ticket this worker claims."""
    worker = f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    return f"{prefix}-{worker}" if prefix else worker


class EscalationScheduler:
    """APScheduler wrapper; each due ticket gets its own transaction.

    Notifications of a ticket are sent only after its transaction commits.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        service_factory: Callable[
            [AsyncSession, NotificationPort], EscalationService
        ] = build_escalation_service,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
        notifier: NotificationPort = default_notifier,
    ):
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._notifier = notifier
        self._interval = interval_seconds or settings.scheduler_interval_seconds
        self._batch_size = batch_size or settings.scheduler_batch_size
        self._scheduler: AsyncIOScheduler | None = None
        self._worker_id = generate_worker_id()

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.is_running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        # First run fires immediately: recovery scan for deadlines missed while down
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            name="Escalate requests past their deadline",
            next_run_time=utc_now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Escalation scheduler started (worker %s, every %ds)", self._worker_id, self._interval
        )

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Escalation scheduler stopped")

    async def run_once(self, now: datetime | None = None) -> EscalationRunSummary:
        """Scan due tickets once and escalate each in its own transaction."""
        now = now or utc_now()
        summary = EscalationRunSummary()

        async with self._session_factory() as session:
            due = await self._service_factory(session, self._notifier).find_due(
                now, self._batch_size
            )
        if not due:
            return summary

        logger.info("Found %d due escalation tickets", len(due))
        for ticket in due:
            summary.scanned += 1
            outbox = DeferredNotifier(self._notifier)
            async with self._session_factory() as session:
                service = self._service_factory(session, outbox)
                try:
                    outcome = await service.escalate(ticket, now, self._worker_id)
                    await session.commit()
                    summary.record(outcome)
                except SchedulerClaimConflict:
                    await session.rollback()
                    outbox.discard()
                    summary.skipped += 1
                    logger.debug("Ticket of request %s claimed by another worker", ticket.request_id)
                except Exception:
                    await session.rollback()
                    outbox.discard()
                    summary.failed += 1
                    logger.exception("Escalation of request %s failed", ticket.request_id)
            await outbox.flush()

        logger.info(
            "Escalation scan: %d escalated, %d exhausted, %d dropped, %d skipped, %d failed",
            summary.escalated, summary.exhausted, summary.dropped, summary.skipped, summary.failed,
        )
        return summary
