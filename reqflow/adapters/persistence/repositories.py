"""SQLAlchemy repository implementations."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reqflow.adapters.persistence.models import (
    ActivityEntryModel,
    AssignmentRuleModel,
    EscalationTicketModel,
    OrgMemberModel,
    RequestModel,
    TeamMembershipModel,
)
from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.directory_repo import DirectoryRepository
from reqflow.application.ports.escalation_repo import EscalationTicketRepository
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.ports.rule_repo import RuleRepository
from reqflow.domain.entities.activity import ActivityComment, ActivityUpdate
from reqflow.domain.entities.assignment_rule import (
    DEFAULT_TIMEOUT_HOURS,
    AssignmentRule,
    EscalationLevel,
    EscalationPolicy,
    RuleConditions,
)
from reqflow.domain.entities.escalation_ticket import EscalationTicket
from reqflow.domain.entities.org_member import OrgMember
from reqflow.domain.entities.request import Request
from reqflow.domain.value_objects.candidate_pool import CandidatePool
from reqflow.domain.value_objects.enums import (
    OPEN_STATUSES,
    AssignmentStrategy,
    RequestPriority,
    RequestStatus,
    RuleType,
    UpdateType,
    UserRole,
)

logger = logging.getLogger(__name__)

_OPEN = [s.value for s in OPEN_STATUSES]

# ─── Mappers ─────────────────────────────────────────────────────────


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _conditions_to_json(c: RuleConditions) -> dict[str, Any]:
    return {
        "roles": list(c.roles),
        "job_roles": list(c.job_roles),
        "team_ids": list(c.team_ids),
        "custom_logic": c.custom_logic,
    }


def _escalation_to_json(p: EscalationPolicy) -> dict[str, Any]:
    return {
        "timeout_hours": p.timeout_hours,
        "escalation_levels": [
            {"level": lvl.level, "roles": list(lvl.roles), "timeout_hours": lvl.timeout_hours}
            for lvl in p.levels
        ],
    }


def _escalation_from_json(data: dict[str, Any] | None) -> EscalationPolicy:
    data = data or {}
    levels = tuple(
        EscalationLevel(
            level=int(lvl["level"]),
            roles=tuple(lvl.get("roles") or ()),
            timeout_hours=float(lvl["timeout_hours"]),
        )
        for lvl in data.get("escalation_levels") or []
    )
    return EscalationPolicy(
        timeout_hours=float(data.get("timeout_hours") or DEFAULT_TIMEOUT_HOURS),
        levels=levels,
    )


def _rule_to_domain(m: AssignmentRuleModel) -> AssignmentRule:
    c = m.conditions or {}
    return AssignmentRule(
        id=m.id,
        request_type_id=m.request_type_id,
        rule_name=m.rule_name,
        priority_order=m.priority_order,
        rule_type=RuleType(m.rule_type),
        assignment_strategy=AssignmentStrategy(m.assignment_strategy),
        conditions=RuleConditions(
            roles=list(c.get("roles") or []),
            job_roles=list(c.get("job_roles") or []),
            team_ids=list(c.get("team_ids") or []),
            custom_logic=c.get("custom_logic") or None,
        ),
        escalation=_escalation_from_json(m.escalation_rules),
        is_active=m.is_active,
    )


def _member_to_domain(m: OrgMemberModel, team_ids: set[str]) -> OrgMember:
    return OrgMember(
        user_id=m.user_id,
        organization_id=m.organization_id,
        role=UserRole(m.role),
        job_role_id=m.job_role_id,
        team_ids=team_ids,
        expertise_score=m.expertise_score,
    )


def _request_to_domain(m: RequestModel) -> Request:
    return Request(
        id=m.id,
        organization_id=m.organization_id,
        request_type_id=m.request_type_id,
        title=m.title,
        description=m.description,
        priority=RequestPriority(m.priority),
        form_data=dict(m.form_data or {}),
        requested_by=m.requested_by,
        status=RequestStatus(m.status),
        assigned_to=CandidatePool.from_raw(m.assigned_to),
        matched_rule_id=m.matched_rule_id,
        assigned_at=_aware(m.assigned_at),
        accepted_by=m.accepted_by,
        accepted_at=_aware(m.accepted_at),
        completed_at=_aware(m.completed_at),
        completion_notes=m.completion_notes,
        created_at=_aware(m.created_at),
    )


def _ticket_to_domain(m: EscalationTicketModel) -> EscalationTicket:
    return EscalationTicket(
        request_id=m.request_id,
        rule_id=m.rule_id,
        current_level=m.current_level,
        deadline_at=_aware(m.deadline_at),
        target_roles=tuple(m.target_roles or ()),
        exhausted=m.exhausted,
        version=m.version,
        claimed_by=m.claimed_by,
    )


def _update_to_domain(m: ActivityEntryModel) -> ActivityUpdate:
    return ActivityUpdate(
        id=m.id,
        request_id=m.request_id,
        author_id=m.author_id,
        created_at=_aware(m.created_at),
        update_type=UpdateType(m.update_type),
        title=m.title or "",
        content=m.content,
        old_status=RequestStatus(m.old_status) if m.old_status else None,
        new_status=RequestStatus(m.new_status) if m.new_status else None,
    )


def _comment_to_domain(m: ActivityEntryModel) -> ActivityComment:
    return ActivityComment(
        id=m.id,
        request_id=m.request_id,
        author_id=m.author_id,
        created_at=_aware(m.created_at),
        content=m.content or "",
        is_internal=m.is_internal,
    )


# ─── Repositories ────────────────────────────────────────────────────


class SqlRuleRepository(RuleRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_active_rules(self, request_type_id: int) -> list[AssignmentRule]:
        result = await self._s.execute(
            select(AssignmentRuleModel)
            .where(
                AssignmentRuleModel.request_type_id == request_type_id,
                AssignmentRuleModel.is_active.is_(True),
            )
            .order_by(AssignmentRuleModel.priority_order, AssignmentRuleModel.id)
            .execution_options(populate_existing=True)
        )
        return [_rule_to_domain(m) for m in result.scalars()]

    async def get_rules(self, request_type_id: int) -> list[AssignmentRule]:
        result = await self._s.execute(
            select(AssignmentRuleModel)
            .where(AssignmentRuleModel.request_type_id == request_type_id)
            .order_by(AssignmentRuleModel.priority_order, AssignmentRuleModel.id)
            .execution_options(populate_existing=True)
        )
        return [_rule_to_domain(m) for m in result.scalars()]

    async def get_by_id(self, rule_id: int) -> AssignmentRule | None:
        m = await self._s.get(AssignmentRuleModel, rule_id, populate_existing=True)
        return _rule_to_domain(m) if m else None

    async def save(self, rule: AssignmentRule) -> AssignmentRule:
        m = AssignmentRuleModel(
            request_type_id=rule.request_type_id,
            rule_name=rule.rule_name,
            priority_order=rule.priority_order,
            rule_type=rule.rule_type.value,
            assignment_strategy=rule.assignment_strategy.value,
            conditions=_conditions_to_json(rule.conditions),
            escalation_rules=_escalation_to_json(rule.escalation),
            is_active=rule.is_active,
        )
        self._s.add(m)
        await self._s.flush()
        rule.id = m.id
        return rule

    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        await self._s.execute(
            update(AssignmentRuleModel)
            .where(AssignmentRuleModel.id == rule.id)
            .values(
                rule_name=rule.rule_name,
                rule_type=rule.rule_type.value,
                assignment_strategy=rule.assignment_strategy.value,
                conditions=_conditions_to_json(rule.conditions),
                escalation_rules=_escalation_to_json(rule.escalation),
                is_active=rule.is_active,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return rule

    async def update_priorities(self, request_type_id: int, priorities: dict[int, int]) -> None:
        # Two passes so the (request_type_id, priority_order) unique key
        # never sees a transient duplicate
        for index, rule_id in enumerate(priorities):
            await self._s.execute(
                update(AssignmentRuleModel)
                .where(
                    AssignmentRuleModel.id == rule_id,
                    AssignmentRuleModel.request_type_id == request_type_id,
                )
                .values(priority_order=-1 - index)
                .execution_options(synchronize_session=False)
            )
        for rule_id, priority in priorities.items():
            await self._s.execute(
                update(AssignmentRuleModel)
                .where(AssignmentRuleModel.id == rule_id)
                .values(priority_order=priority)
                .execution_options(synchronize_session=False)
            )
        await self._s.flush()

    async def delete(self, rule_id: int) -> None:
        await self._s.execute(
            delete(AssignmentRuleModel)
            .where(AssignmentRuleModel.id == rule_id)
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()


class SqlDirectoryRepository(DirectoryRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_members_by_roles(
        self, organization_id: str, roles: Iterable[str]
    ) -> list[OrgMember]:
        return await self._members(organization_id, OrgMemberModel.role.in_(list(roles)))

    async def get_members_by_job_roles(
        self, organization_id: str, job_role_ids: Iterable[str]
    ) -> list[OrgMember]:
        return await self._members(
            organization_id, OrgMemberModel.job_role_id.in_(list(job_role_ids))
        )

    async def get_members_by_teams(
        self, organization_id: str, team_ids: Iterable[str]
    ) -> list[OrgMember]:
        in_teams = select(TeamMembershipModel.user_id).where(
            TeamMembershipModel.organization_id == organization_id,
            TeamMembershipModel.team_id.in_(list(team_ids)),
        )
        return await self._members(organization_id, OrgMemberModel.user_id.in_(in_teams))

    async def save(self, member: OrgMember) -> OrgMember:
        self._s.add(
            OrgMemberModel(
                organization_id=member.organization_id,
                user_id=member.user_id,
                role=member.role.value,
                job_role_id=member.job_role_id,
                expertise_score=member.expertise_score,
            )
        )
        for team_id in sorted(member.team_ids):
            self._s.add(
                TeamMembershipModel(
                    organization_id=member.organization_id,
                    team_id=team_id,
                    user_id=member.user_id,
                )
            )
        await self._s.flush()
        return member

    async def _members(self, organization_id: str, criterion) -> list[OrgMember]:
        result = await self._s.execute(
            select(OrgMemberModel)
            .where(OrgMemberModel.organization_id == organization_id, criterion)
            .order_by(OrgMemberModel.id)
        )
        rows = list(result.scalars())
        if not rows:
            return []

        teams: dict[str, set[str]] = {m.user_id: set() for m in rows}
        memberships = await self._s.execute(
            select(TeamMembershipModel.user_id, TeamMembershipModel.team_id).where(
                TeamMembershipModel.organization_id == organization_id,
                TeamMembershipModel.user_id.in_(list(teams)),
            )
        )
        for user_id, team_id in memberships:
            teams[user_id].add(team_id)
        return [_member_to_domain(m, teams[m.user_id]) for m in rows]


class SqlRequestRepository(RequestRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, request: Request) -> Request:
        m = RequestModel(
            organization_id=request.organization_id,
            request_type_id=request.request_type_id,
            title=request.title,
            description=request.description,
            priority=request.priority.value,
            form_data=dict(request.form_data),
            requested_by=request.requested_by,
            status=request.status.value,
            assigned_to=request.assigned_to.to_list(),
            matched_rule_id=request.matched_rule_id,
            assigned_at=request.assigned_at,
            accepted_by=request.accepted_by,
            accepted_at=request.accepted_at,
            created_at=request.created_at or datetime.now(timezone.utc),
        )
        self._s.add(m)
        await self._s.flush()
        request.id = m.id
        request.created_at = _aware(m.created_at)
        return request

    async def get_by_id(self, request_id: int) -> Request | None:
        result = await self._s.execute(
            select(RequestModel)
            .where(RequestModel.id == request_id)
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _request_to_domain(m) if m else None

    async def get_for_update(self, request_id: int) -> Request | None:
        result = await self._s.execute(
            select(RequestModel)
            .where(RequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _request_to_domain(m) if m else None

    async def get_unassigned(self, organization_id: str | None = None) -> list[Request]:
        stmt = select(RequestModel).where(RequestModel.status == RequestStatus.SUBMITTED.value)
        if organization_id is not None:
            stmt = stmt.where(RequestModel.organization_id == organization_id)
        result = await self._s.execute(
            stmt.order_by(RequestModel.id).execution_options(populate_existing=True)
        )
        return [_request_to_domain(m) for m in result.scalars() if not m.assigned_to]

    async def assign(
        self, request_id: int, pool: CandidatePool, rule_id: int, now: datetime
    ) -> bool:
        return await self._conditional_update(
            request_id,
            [RequestModel.status == RequestStatus.SUBMITTED.value],
            assigned_to=pool.to_list(),
            matched_rule_id=rule_id,
            assigned_at=now,
            status=RequestStatus.UNDER_REVIEW.value,
        )

    async def extend_pool(self, request_id: int, pool: CandidatePool) -> bool:
        return await self._conditional_update(
            request_id,
            [
                RequestModel.status == RequestStatus.UNDER_REVIEW.value,
                RequestModel.accepted_by.is_(None),
            ],
            assigned_to=pool.to_list(),
        )

    async def try_accept(self, request_id: int, user_id: str, now: datetime) -> bool:
        return await self._conditional_update(
            request_id,
            [
                RequestModel.accepted_by.is_(None),
                RequestModel.status == RequestStatus.UNDER_REVIEW.value,
            ],
            accepted_by=user_id,
            accepted_at=now,
            status=RequestStatus.IN_PROGRESS.value,
        )

    async def try_complete(
        self, request_id: int, user_id: str, now: datetime, notes: str | None
    ) -> bool:
        return await self._conditional_update(
            request_id,
            [
                RequestModel.status == RequestStatus.IN_PROGRESS.value,
                RequestModel.accepted_by == user_id,
            ],
            status=RequestStatus.COMPLETED.value,
            completed_at=now,
            completion_notes=notes,
        )

    async def try_cancel(self, request_id: int, now: datetime) -> bool:
        return await self._conditional_update(
            request_id,
            [RequestModel.status.in_(_OPEN)],
            status=RequestStatus.CANCELLED.value,
            accepted_by=None,
            accepted_at=None,
        )

    async def count_open_assignments(self, user_ids: Iterable[str]) -> dict[str, int]:
        counts = {uid: 0 for uid in user_ids}
        if not counts:
            return counts
        result = await self._s.execute(
            select(RequestModel.accepted_by, func.count(RequestModel.id))
            .where(
                RequestModel.status == RequestStatus.IN_PROGRESS.value,
                RequestModel.accepted_by.in_(list(counts)),
            )
            .group_by(RequestModel.accepted_by)
        )
        for user_id, count in result:
            counts[user_id] = count

        # Pools are JSON lists, so membership is counted here rather than in SQL
        pools = await self._s.execute(
            select(RequestModel.assigned_to).where(
                RequestModel.status == RequestStatus.UNDER_REVIEW.value
            )
        )
        for (pool,) in pools:
            for user_id in set(pool or ()):
                if user_id in counts:
                    counts[user_id] += 1
        return counts

    async def get_assigned_since(self, organization_id: str, since: datetime) -> list[Request]:
        result = await self._s.execute(
            select(RequestModel)
            .where(
                RequestModel.organization_id == organization_id,
                RequestModel.assigned_at.is_not(None),
                RequestModel.assigned_at >= since,
            )
            .order_by(RequestModel.assigned_at, RequestModel.id)
            .execution_options(populate_existing=True)
        )
        return [_request_to_domain(m) for m in result.scalars()]

    async def _conditional_update(self, request_id: int, guards: list, **values) -> bool:
        result = await self._s.execute(
            update(RequestModel)
            .where(RequestModel.id == request_id, *guards)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return result.rowcount == 1


class SqlEscalationTicketRepository(EscalationTicketRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def upsert(self, ticket: EscalationTicket) -> EscalationTicket:
        m = await self._s.get(EscalationTicketModel, ticket.request_id, populate_existing=True)
        if m is None:
            m = EscalationTicketModel(request_id=ticket.request_id, version=ticket.version)
            self._s.add(m)
        else:
            m.version = m.version + 1
        m.rule_id = ticket.rule_id
        m.current_level = ticket.current_level
        m.deadline_at = ticket.deadline_at
        m.target_roles = list(ticket.target_roles)
        m.exhausted = ticket.exhausted
        m.claimed_by = None
        await self._s.flush()
        ticket.version = m.version
        ticket.claimed_by = None
        return ticket

    async def get_by_request(self, request_id: int) -> EscalationTicket | None:
        m = await self._s.get(EscalationTicketModel, request_id, populate_existing=True)
        return _ticket_to_domain(m) if m else None

    async def delete_by_request(self, request_id: int) -> None:
        await self._s.execute(
            delete(EscalationTicketModel)
            .where(EscalationTicketModel.request_id == request_id)
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()

    async def find_due(self, now: datetime, limit: int) -> list[EscalationTicket]:
        result = await self._s.execute(
            select(EscalationTicketModel)
            .where(
                EscalationTicketModel.exhausted.is_(False),
                EscalationTicketModel.deadline_at <= now,
            )
            .order_by(EscalationTicketModel.deadline_at, EscalationTicketModel.request_id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [_ticket_to_domain(m) for m in result.scalars()]

    async def claim(self, request_id: int, version: int, worker_id: str) -> bool:
        result = await self._s.execute(
            update(EscalationTicketModel)
            .where(
                EscalationTicketModel.request_id == request_id,
                EscalationTicketModel.version == version,
            )
            .values(version=version + 1, claimed_by=worker_id)
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return result.rowcount == 1

    async def update(self, ticket: EscalationTicket) -> None:
        await self._s.execute(
            update(EscalationTicketModel)
            .where(EscalationTicketModel.request_id == ticket.request_id)
            .values(
                current_level=ticket.current_level,
                deadline_at=ticket.deadline_at,
                target_roles=list(ticket.target_roles),
                exhausted=ticket.exhausted,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()

    async def list_exhausted(self) -> list[EscalationTicket]:
        result = await self._s.execute(
            select(EscalationTicketModel)
            .where(EscalationTicketModel.exhausted.is_(True))
            .order_by(EscalationTicketModel.deadline_at)
            .execution_options(populate_existing=True)
        )
        return [_ticket_to_domain(m) for m in result.scalars()]


class SqlActivityRepository(ActivityRepository):
    """Append-only log.

    Each insert runs in a SAVEPOINT; a failed insert is logged and leaves a
    gap in the timeline instead of rolling back the caller's transition.
    """

    def __init__(self, session: AsyncSession):
        self._s = session

    async def add_update(self, entry: ActivityUpdate) -> ActivityUpdate:
        m = ActivityEntryModel(
            request_id=entry.request_id,
            kind=ActivityUpdate.kind,
            author_id=entry.author_id,
            created_at=entry.created_at,
            update_type=entry.update_type.value,
            title=entry.title,
            content=entry.content,
            old_status=entry.old_status.value if entry.old_status else None,
            new_status=entry.new_status.value if entry.new_status else None,
        )
        entry_id = await self._insert(m, entry.request_id)
        return replace(entry, id=entry_id) if entry_id is not None else entry

    async def add_comment(self, comment: ActivityComment) -> ActivityComment:
        m = ActivityEntryModel(
            request_id=comment.request_id,
            kind=ActivityComment.kind,
            author_id=comment.author_id,
            created_at=comment.created_at,
            content=comment.content,
            is_internal=comment.is_internal,
        )
        entry_id = await self._insert(m, comment.request_id)
        return replace(comment, id=entry_id) if entry_id is not None else comment

    async def list_updates(self, request_id: int) -> list[ActivityUpdate]:
        return [_update_to_domain(m) for m in await self._entries(request_id, ActivityUpdate.kind)]

    async def list_comments(self, request_id: int) -> list[ActivityComment]:
        return [_comment_to_domain(m) for m in await self._entries(request_id, ActivityComment.kind)]

    async def has_update(self, request_id: int, update_type: UpdateType) -> bool:
        result = await self._s.execute(
            select(func.count(ActivityEntryModel.id)).where(
                ActivityEntryModel.request_id == request_id,
                ActivityEntryModel.kind == ActivityUpdate.kind,
                ActivityEntryModel.update_type == update_type.value,
            )
        )
        return result.scalar_one() > 0

    async def _insert(self, m: ActivityEntryModel, request_id: int) -> int | None:
        try:
            async with self._s.begin_nested():
                self._s.add(m)
                await self._s.flush()
        except SQLAlchemyError:
            logger.exception("Could not record activity for request %s", request_id)
            return None
        return m.id

    async def _entries(self, request_id: int, kind: str) -> list[ActivityEntryModel]:
        result = await self._s.execute(
            select(ActivityEntryModel)
            .where(ActivityEntryModel.request_id == request_id, ActivityEntryModel.kind == kind)
            .order_by(ActivityEntryModel.created_at, ActivityEntryModel.id)
        )
        return list(result.scalars())
