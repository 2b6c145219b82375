"""AssignRequestUseCase — match → resolve → rank → persist → escalate → notify."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.ports.rule_repo import RuleRepository
from reqflow.application.services.eligibility import EligibilityResolver
from reqflow.application.services.notifications import notify_safely
from reqflow.application.use_cases.escalate import EscalationService
from reqflow.domain.entities.activity import ActivityUpdate
from reqflow.domain.entities.request import Request
from reqflow.domain.errors import InvalidTransition, NoEligibleUsers, NoMatchingRule
from reqflow.domain.policies.custom_logic import CustomLogicEvaluator
from reqflow.domain.policies.lifecycle import ensure_transition
from reqflow.domain.policies.rule_matching import match_rule
from reqflow.domain.policies.strategy import rank_candidates
from reqflow.domain.value_objects.enums import (
    AssignmentOutcome,
    AssignmentStrategy,
    RequestStatus,
    UpdateType,
)

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    """Summary of one assignment attempt."""

    request_id: int
    outcome: AssignmentOutcome
    candidates: list[str] = field(default_factory=list)
    rule_id: int | None = None
    strategy: AssignmentStrategy | None = None
    reason: str | None = None


class AssignRequestUseCase:
    """Offers a submitted request to its eligible candidate pool."""

    def __init__(
        self,
        rule_repo: RuleRepository,
        request_repo: RequestRepository,
        activity_repo: ActivityRepository,
        resolver: EligibilityResolver,
        escalation: EscalationService,
        notifier: NotificationPort,
        evaluator: CustomLogicEvaluator,
    ):
        self._rules = rule_repo
        self._requests = request_repo
        self._activity = activity_repo
        self._resolver = resolver
        self._escalation = escalation
        self._notifier = notifier
        self._evaluator = evaluator

    async def execute(self, request: Request, now: datetime) -> AssignmentResult:
        """Assign *request* or leave it unassigned with an admin alert.

        Pipeline:
        1. Match the first applicable rule of the request type
        2. Resolve the rule to org members
        3. Rank them by the rule's strategy (the whole set stays eligible)
        4. Persist pool and status, register the escalation deadline
        5. Append an ``assigned`` update and notify the candidates
        """
        ensure_transition(request.status, RequestStatus.UNDER_REVIEW)

        try:
            rules = await self._rules.get_active_rules(request.request_type_id)
            rule = match_rule(rules, request.match_attributes(), self._evaluator)
            if rule is None:
                raise NoMatchingRule(request.request_type_id)

            members = await self._resolver.resolve(rule, request.organization_id)
            if not members:
                raise NoEligibleUsers(rule.id)
        except NoMatchingRule as exc:
            return await self._leave_unassigned(request, AssignmentOutcome.NO_MATCHING_RULE, exc, now)
        except NoEligibleUsers as exc:
            return await self._leave_unassigned(
                request, AssignmentOutcome.NO_ELIGIBLE_USERS, exc, now, rule_id=exc.rule_id
            )

        workload: dict[str, int] = {}
        if rule.assignment_strategy == AssignmentStrategy.LOAD_BALANCED:
            workload = await self._requests.count_open_assignments(m.user_id for m in members)
        pool = rank_candidates(members, rule.assignment_strategy, workload)

        if not await self._requests.assign(request.id, pool, rule.id, now):
            current = await self._requests.get_by_id(request.id)
            status = current.status if current else request.status
            raise InvalidTransition(status.value, "assign")

        old_status = request.status
        request.status = RequestStatus.UNDER_REVIEW
        request.assigned_to = pool
        request.matched_rule_id = rule.id
        request.assigned_at = now

        await self._escalation.register(request, rule, now)
        await self._activity.add_update(
            ActivityUpdate(
                id=None,
                request_id=request.id,
                author_id=None,
                created_at=now,
                update_type=UpdateType.ASSIGNED,
                title=f"Assigned via rule '{rule.rule_name}'",
                content=f"Offered to {len(pool)} candidate(s) ({rule.assignment_strategy.value})",
                old_status=old_status,
                new_status=RequestStatus.UNDER_REVIEW,
            )
        )
        logger.info(
            "Request %s → rule %s (%s), %d candidates",
            request.id, rule.id, rule.assignment_strategy.value, len(pool),
        )

        await notify_safely(
            self._notifier.on_assigned(request, pool.to_list()), "OnAssigned", request.id
        )
        return AssignmentResult(
            request_id=request.id,
            outcome=AssignmentOutcome.ASSIGNED,
            candidates=pool.to_list(),
            rule_id=rule.id,
            strategy=rule.assignment_strategy,
        )

    async def _leave_unassigned(
        self,
        request: Request,
        outcome: AssignmentOutcome,
        error: Exception,
        now: datetime,
        rule_id: int | None = None,
    ) -> AssignmentResult:
        logger.warning("Request %s left unassigned: %s", request.id, error)

        # One alert per request, however often assignment is retried
        if not await self._activity.has_update(request.id, UpdateType.UNASSIGNED):
            await self._activity.add_update(
                ActivityUpdate(
                    id=None,
                    request_id=request.id,
                    author_id=None,
                    created_at=now,
                    update_type=UpdateType.UNASSIGNED,
                    title="Awaiting manual assignment",
                    content=str(error),
                )
            )
            admins = await self._resolver.admin_ids(request.organization_id)
            await notify_safely(
                self._notifier.on_admin_alert(request, admins, str(error)),
                "OnAdminAlert", request.id,
            )

        return AssignmentResult(
            request_id=request.id,
            outcome=outcome,
            rule_id=rule_id,
            reason=str(error),
        )


class BatchAssignUseCase:
    """Retry assignment for every submitted request that has no candidates."""

    def __init__(self, assign_request: AssignRequestUseCase, request_repo: RequestRepository):
        self._assign = assign_request
        self._requests = request_repo

    async def execute(self, organization_id: str | None, now: datetime) -> list[AssignmentResult]:
        pending = await self._requests.get_unassigned(organization_id)
        logger.info("Batch assigning %d pending requests", len(pending))

        results = []
        for request in pending:
            results.append(await self._assign.execute(request, now))

        assigned = sum(1 for r in results if r.outcome == AssignmentOutcome.ASSIGNED)
        logger.info("Batch complete: %d/%d assigned", assigned, len(results))
        return results
