"""EscalationService — durable deadlines for requests nobody has claimed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.escalation_repo import EscalationTicketRepository
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.ports.rule_repo import RuleRepository
from reqflow.application.services.eligibility import EligibilityResolver
from reqflow.application.services.notifications import notify_safely
from reqflow.domain.entities.activity import ActivityUpdate
from reqflow.domain.entities.assignment_rule import AssignmentRule
from reqflow.domain.entities.escalation_ticket import EscalationTicket
from reqflow.domain.entities.request import Request
from reqflow.domain.errors import EscalationExhausted, SchedulerClaimConflict
from reqflow.domain.policies.escalation import initial_deadline, next_deadline, next_level
from reqflow.domain.value_objects.enums import RequestStatus, UpdateType

logger = logging.getLogger(__name__)

ESCALATED = "escalated"
EXHAUSTED = "exhausted"
DROPPED = "dropped"


@dataclass
class EscalationRunSummary:
    """Counters for one scan over due tickets."""

    scanned: int = 0
    escalated: int = 0
    exhausted: int = 0
    dropped: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, outcome: str) -> None:
        if outcome == ESCALATED:
            self.escalated += 1
        elif outcome == EXHAUSTED:
            self.exhausted += 1
        elif outcome == DROPPED:
            self.dropped += 1


def _awaiting_acceptance(request: Request) -> bool:
    return request.status == RequestStatus.UNDER_REVIEW and request.accepted_by is None


class EscalationService:
    """Sole writer of escalation tickets.

    Tickets are created when a request is assigned, removed when it is
    accepted, completed or cancelled, and advanced one level at a time by
    the scheduler.
    """

    def __init__(
        self,
        ticket_repo: EscalationTicketRepository,
        request_repo: RequestRepository,
        rule_repo: RuleRepository,
        activity_repo: ActivityRepository,
        resolver: EligibilityResolver,
        notifier: NotificationPort,
    ):
        self._tickets = ticket_repo
        self._requests = request_repo
        self._rules = rule_repo
        self._activity = activity_repo
        self._resolver = resolver
        self._notifier = notifier

    async def register(
        self, request: Request, rule: AssignmentRule, now: datetime
    ) -> EscalationTicket:
        ticket = EscalationTicket(
            request_id=request.id,
            rule_id=rule.id,
            current_level=0,
            deadline_at=initial_deadline(rule.escalation, request.assigned_at or now),
            target_roles=tuple(rule.conditions.roles),
        )
        ticket = await self._tickets.upsert(ticket)
        logger.info(
            "Request %s: escalation deadline %s (rule %s)",
            request.id, ticket.deadline_at.isoformat(), rule.id,
        )
        return ticket

    async def deregister(self, request_id: int) -> None:
        await self._tickets.delete_by_request(request_id)

    async def find_due(self, now: datetime, limit: int = 100) -> list[EscalationTicket]:
        return await self._tickets.find_due(now, limit)

    async def escalate(self, ticket: EscalationTicket, now: datetime, worker_id: str) -> str:
        """Advance *ticket* by exactly one level.

        The request row is locked before the ticket is claimed, the same
        order accept, complete and cancel use.

        Returns:
            "escalated", "exhausted" or "dropped" (ticket of a request that
            is no longer waiting for acceptance).

        Raises:
            SchedulerClaimConflict: another worker claimed the ticket first.
        """
        request = await self._requests.get_for_update(ticket.request_id)
        if request is None or not _awaiting_acceptance(request):
            return await self._drop(ticket.request_id)

        if not await self._tickets.claim(ticket.request_id, ticket.version, worker_id):
            raise SchedulerClaimConflict(ticket.request_id)
        ticket.version += 1
        ticket.claimed_by = worker_id

        rule = await self._rules.get_by_id(ticket.rule_id)
        try:
            if rule is None:
                raise EscalationExhausted(ticket.current_level)
            level = next_level(rule.escalation, ticket.current_level)
        except EscalationExhausted:
            await self._exhaust(ticket, request, now, rule is None)
            return EXHAUSTED

        members = await self._resolver.resolve_roles(level.roles, request.organization_id)
        pool = request.assigned_to.union(m.user_id for m in members)
        added = pool.difference(request.assigned_to).to_list()
        if not await self._requests.extend_pool(request.id, pool):
            return await self._drop(request.id)
        request.assigned_to = pool

        ticket.current_level = level.level
        ticket.target_roles = tuple(level.roles)
        ticket.deadline_at = next_deadline(level, now, ticket.deadline_at)
        await self._tickets.update(ticket)

        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request.id,
                author_id=None,
                created_at=now,
                update_type=UpdateType.ESCALATED,
                title=f"Escalated to level {level.level}",
                content=f"Offered to roles: {', '.join(level.roles)}",
            )
        )
        logger.info(
            "Request %s escalated to level %d (%d new candidates, next deadline %s)",
            request.id, level.level, len(added), ticket.deadline_at.isoformat(),
        )

        if added:
            await notify_safely(
                self._notifier.on_escalated(request, added, level.level),
                "OnEscalated", request.id,
            )
        return ESCALATED

    async def process_due(
        self, now: datetime, worker_id: str, limit: int = 100
    ) -> EscalationRunSummary:
        """Escalate every due ticket once, within the caller's transaction."""
        summary = EscalationRunSummary()
        for ticket in await self.find_due(now, limit):
            summary.scanned += 1
            try:
                summary.record(await self.escalate(ticket, now, worker_id))
            except SchedulerClaimConflict:
                logger.info("Ticket of request %s claimed elsewhere, skipping", ticket.request_id)
                summary.skipped += 1
            except Exception:
                logger.exception("Escalation of request %s failed", ticket.request_id)
                summary.failed += 1
        return summary

    async def _drop(self, request_id: int) -> str:
        logger.info("Dropping stale escalation ticket of request %s", request_id)
        await self._tickets.delete_by_request(request_id)
        return DROPPED

    async def _exhaust(
        self, ticket: EscalationTicket, request: Request, now: datetime, rule_missing: bool
    ) -> None:
        reason = (
            "Assignment rule was removed"
            if rule_missing
            else f"No escalation level after level {ticket.current_level}"
        )
        ticket.current_level += 1
        ticket.exhausted = True
        await self._tickets.update(ticket)

        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request.id,
                author_id=None,
                created_at=now,
                update_type=UpdateType.ESCALATION_EXHAUSTED,
                title="Escalation exhausted",
                content=reason,
            )
        )
        logger.warning("Request %s needs manual handling: %s", request.id, reason)

        admins = await self._resolver.admin_ids(request.organization_id)
        await notify_safely(
            self._notifier.on_admin_alert(request, admins, reason),
            "OnAdminAlert", request.id,
        )


class ListExhaustedUseCase:
    """Requests whose escalation chain ran out and now need a human."""

    def __init__(self, ticket_repo: EscalationTicketRepository, request_repo: RequestRepository):
        self._tickets = ticket_repo
        self._requests = request_repo

    async def execute(self, organization_id: str) -> list[tuple[EscalationTicket, Request]]:
        results = []
        for ticket in await self._tickets.list_exhausted():
            request = await self._requests.get_by_id(ticket.request_id)
            if request is not None and request.organization_id == organization_id:
                results.append((ticket, request))
        return results
