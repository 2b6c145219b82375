"""Pytest configuration, in-memory port fakes and shared fixtures."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from reqflow.adapters.persistence.database import Base
from reqflow.application.ports.activity_repo import ActivityRepository
from reqflow.application.ports.directory_repo import DirectoryRepository
from reqflow.application.ports.escalation_repo import EscalationTicketRepository
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.ports.request_repo import RequestRepository
from reqflow.application.ports.rule_repo import RuleRepository
from reqflow.application.services.eligibility import EligibilityResolver
from reqflow.application.use_cases.accept_request import AcceptRequestUseCase
from reqflow.application.use_cases.assign_request import AssignRequestUseCase, BatchAssignUseCase
from reqflow.application.use_cases.cancel_request import CancelRequestUseCase
from reqflow.application.use_cases.complete_request import CompleteRequestUseCase
from reqflow.application.use_cases.create_request import CreateRequestUseCase, NewRequest
from reqflow.application.use_cases.escalate import EscalationService
from reqflow.application.use_cases.timeline import AddCommentUseCase, GetTimelineUseCase
from reqflow.domain.entities.assignment_rule import (
    AssignmentRule,
    EscalationLevel,
    EscalationPolicy,
    RuleConditions,
)
from reqflow.domain.entities.org_member import OrgMember
from reqflow.domain.entities.request import Request
from reqflow.domain.policies.custom_logic import CustomLogicEvaluator
from reqflow.domain.value_objects.context import RequestContext
from reqflow.domain.value_objects.enums import (
    OPEN_STATUSES,
    AssignmentStrategy,
    RequestPriority,
    RequestStatus,
    RuleType,
    UserRole,
)

ORG = "org-1"
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ─── In-memory fakes ────────────────────────────────────────────────


class FakeRuleRepo(RuleRepository):
    def __init__(self):
        self.rules: dict[int, AssignmentRule] = {}
        self._next_id = 1

    async def get_active_rules(self, request_type_id):
        return [r for r in await self.get_rules(request_type_id) if r.is_active]

    async def get_rules(self, request_type_id):
        rules = [r for r in self.rules.values() if r.request_type_id == request_type_id]
        return sorted(rules, key=lambda r: (r.priority_order, r.id))

    async def get_by_id(self, rule_id):
        return self.rules.get(rule_id)

    async def save(self, rule):
        rule.id = self._next_id
        self._next_id += 1
        self.rules[rule.id] = rule
        return rule

    async def update(self, rule):
        stored = self.rules[rule.id]
        self.rules[rule.id] = replace(rule, priority_order=stored.priority_order)
        return rule

    async def update_priorities(self, request_type_id, priorities):
        for rule_id, priority in priorities.items():
            self.rules[rule_id].priority_order = priority

    async def delete(self, rule_id):
        self.rules.pop(rule_id, None)


class FakeDirectoryRepo(DirectoryRepository):
    def __init__(self):
        self.members: list[OrgMember] = []

    async def get_members_by_roles(self, organization_id, roles):
        roles = set(roles)
        return [m for m in self._in(organization_id) if m.role.value in roles]

    async def get_members_by_job_roles(self, organization_id, job_role_ids):
        ids = set(job_role_ids)
        return [m for m in self._in(organization_id) if m.job_role_id in ids]

    async def get_members_by_teams(self, organization_id, team_ids):
        teams = set(team_ids)
        return [m for m in self._in(organization_id) if m.team_ids & teams]

    async def save(self, member):
        self.members.append(member)
        return member

    def _in(self, organization_id):
        return [m for m in self.members if m.organization_id == organization_id]


class FakeRequestRepo(RequestRepository):
    """Conditional writes have no await inside, so each one is atomic."""

    def __init__(self):
        self.requests: dict[int, Request] = {}
        self._next_id = 1

    async def save(self, request):
        request.id = self._next_id
        self._next_id += 1
        self.requests[request.id] = replace(request)
        return request

    async def get_by_id(self, request_id):
        # Let concurrent callers interleave between read and write
        await asyncio.sleep(0)
        r = self.requests.get(request_id)
        return replace(r) if r else None

    async def get_for_update(self, request_id):
        r = self.requests.get(request_id)
        return replace(r) if r else None

    async def get_unassigned(self, organization_id=None):
        return [
            replace(r) for r in self.requests.values()
            if r.status == RequestStatus.SUBMITTED
            and not r.assigned_to
            and (organization_id is None or r.organization_id == organization_id)
        ]

    async def assign(self, request_id, pool, rule_id, now):
        r = self.requests.get(request_id)
        if r is None or r.status != RequestStatus.SUBMITTED:
            return False
        r.assigned_to, r.matched_rule_id, r.assigned_at = pool, rule_id, now
        r.status = RequestStatus.UNDER_REVIEW
        return True

    async def extend_pool(self, request_id, pool):
        r = self.requests.get(request_id)
        if r is None or r.status != RequestStatus.UNDER_REVIEW or r.accepted_by:
            return False
        r.assigned_to = pool
        return True

    async def try_accept(self, request_id, user_id, now):
        r = self.requests.get(request_id)
        if r is None or r.accepted_by is not None or r.status != RequestStatus.UNDER_REVIEW:
            return False
        r.accepted_by, r.accepted_at = user_id, now
        r.status = RequestStatus.IN_PROGRESS
        return True

    async def try_complete(self, request_id, user_id, now, notes):
        r = self.requests.get(request_id)
        if r is None or r.status != RequestStatus.IN_PROGRESS or r.accepted_by != user_id:
            return False
        r.status, r.completed_at, r.completion_notes = RequestStatus.COMPLETED, now, notes
        return True

    async def try_cancel(self, request_id, now):
        r = self.requests.get(request_id)
        if r is None or r.status not in OPEN_STATUSES:
            return False
        r.status = RequestStatus.CANCELLED
        r.accepted_by = r.accepted_at = None
        return True

    async def count_open_assignments(self, user_ids):
        counts = {uid: 0 for uid in user_ids}
        for r in self.requests.values():
            if r.status == RequestStatus.IN_PROGRESS and r.accepted_by in counts:
                counts[r.accepted_by] += 1
            elif r.status == RequestStatus.UNDER_REVIEW:
                for uid in r.assigned_to:
                    if uid in counts:
                        counts[uid] += 1
        return counts

    async def get_assigned_since(self, organization_id, since):
        return sorted(
            (
                replace(r) for r in self.requests.values()
                if r.organization_id == organization_id
                and r.assigned_at is not None
                and r.assigned_at >= since
            ),
            key=lambda r: (r.assigned_at, r.id),
        )


class FakeTicketRepo(EscalationTicketRepository):
    def __init__(self):
        self.tickets = {}

    async def upsert(self, ticket):
        self.tickets[ticket.request_id] = replace(ticket)
        return ticket

    async def get_by_request(self, request_id):
        t = self.tickets.get(request_id)
        return replace(t) if t else None

    async def delete_by_request(self, request_id):
        self.tickets.pop(request_id, None)

    async def find_due(self, now, limit):
        due = [replace(t) for t in self.tickets.values() if t.is_due(now)]
        return sorted(due, key=lambda t: (t.deadline_at, t.request_id))[:limit]

    async def claim(self, request_id, version, worker_id):
        t = self.tickets.get(request_id)
        if t is None or t.version != version:
            return False
        t.version += 1
        t.claimed_by = worker_id
        return True

    async def update(self, ticket):
        t = self.tickets.get(ticket.request_id)
        if t is not None:
            t.current_level = ticket.current_level
            t.deadline_at = ticket.deadline_at
            t.target_roles = tuple(ticket.target_roles)
            t.exhausted = ticket.exhausted

    async def list_exhausted(self):
        return [replace(t) for t in self.tickets.values() if t.exhausted]


class FakeActivityRepo(ActivityRepository):
    def __init__(self):
        self.entries = []
        self._next_id = 1

    async def add_update(self, entry):
        return self._append(entry)

    async def add_comment(self, comment):
        return self._append(comment)

    async def list_updates(self, request_id):
        return [e for e in self.entries if e.kind == "update" and e.request_id == request_id]

    async def list_comments(self, request_id):
        return [e for e in self.entries if e.kind == "comment" and e.request_id == request_id]

    async def has_update(self, request_id, update_type):
        return any(u.update_type == update_type for u in await self.list_updates(request_id))

    def updates_of(self, request_id, update_type=None):
        return [
            e for e in self.entries
            if e.kind == "update" and e.request_id == request_id
            and (update_type is None or e.update_type == update_type)
        ]

    def _append(self, entry):
        saved = replace(entry, id=self._next_id)
        self._next_id += 1
        self.entries.append(saved)
        return saved


class RecordingNotifier(NotificationPort):
    def __init__(self, fail: bool = False):
        self.events: list[tuple[str, int, list[str]]] = []
        self.fail = fail

    async def on_assigned(self, request, candidates):
        self._record("assigned", request, candidates)

    async def on_escalated(self, request, new_candidates, level):
        self._record("escalated", request, new_candidates)

    async def on_accepted(self, request, user_id):
        self._record("accepted", request, [user_id])

    async def on_offers_withdrawn(self, request, user_ids):
        self._record("offers_withdrawn", request, user_ids)

    async def on_completed(self, request):
        self._record("completed", request, [request.requested_by])

    async def on_admin_alert(self, request, recipients, reason):
        self._record("admin_alert", request, recipients)

    def of(self, event):
        return [e for e in self.events if e[0] == event]

    def _record(self, event, request, recipients):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.events.append((event, request.id, list(recipients)))


# ─── Harness ────────────────────────────────────────────────────────


@dataclass
class Harness:
    """Every use case wired to the same set of fakes."""

    rules: FakeRuleRepo
    directory: FakeDirectoryRepo
    requests: FakeRequestRepo
    tickets: FakeTicketRepo
    activity: FakeActivityRepo
    notifier: RecordingNotifier
    evaluator: CustomLogicEvaluator
    resolver: EligibilityResolver
    escalation: EscalationService
    assign: AssignRequestUseCase
    batch_assign: BatchAssignUseCase
    create: CreateRequestUseCase
    accept: AcceptRequestUseCase
    complete: CompleteRequestUseCase
    cancel: CancelRequestUseCase
    timeline: GetTimelineUseCase
    comment: AddCommentUseCase

    def ctx(self, user_id: str, now: datetime = T0, org: str = ORG) -> RequestContext:
        return RequestContext(organization_id=org, user_id=user_id, now=now)

    def add_member(
        self,
        user_id: str,
        role: UserRole = UserRole.USER,
        job_role_id: str | None = None,
        teams: tuple[str, ...] = (),
        expertise: int = 0,
        org: str = ORG,
    ) -> OrgMember:
        member = OrgMember(
            user_id=user_id,
            organization_id=org,
            role=role,
            job_role_id=job_role_id,
            team_ids=set(teams),
            expertise_score=expertise,
        )
        self.directory.members.append(member)
        return member

    def add_rule(
        self,
        rule_type: RuleType = RuleType.ROLE_BASED,
        roles: tuple[str, ...] = ("manager",),
        job_roles: tuple[str, ...] = (),
        team_ids: tuple[str, ...] = (),
        custom_logic: str | None = None,
        strategy: AssignmentStrategy = AssignmentStrategy.FIRST_AVAILABLE,
        timeout_hours: float = 2.0,
        levels: tuple[tuple[tuple[str, ...], float], ...] = (),
        priority: int | None = None,
        request_type_id: int = 1,
        name: str = "rule",
        active: bool = True,
    ) -> AssignmentRule:
        rule = AssignmentRule(
            id=self.rules._next_id,
            request_type_id=request_type_id,
            rule_name=name,
            priority_order=priority if priority is not None else len(self.rules.rules),
            rule_type=rule_type,
            assignment_strategy=strategy,
            conditions=RuleConditions(
                roles=list(roles),
                job_roles=list(job_roles),
                team_ids=list(team_ids),
                custom_logic=custom_logic,
            ),
            escalation=EscalationPolicy(
                timeout_hours=timeout_hours,
                levels=tuple(
                    EscalationLevel(level=i, roles=tuple(r), timeout_hours=h)
                    for i, (r, h) in enumerate(levels, start=1)
                ),
            ),
            is_active=active,
        )
        self.rules._next_id += 1
        self.rules.rules[rule.id] = rule
        return rule

    async def submit(
        self,
        requested_by: str = "emp",
        priority: RequestPriority = RequestPriority.MEDIUM,
        form_data: dict | None = None,
        request_type_id: int = 1,
        now: datetime = T0,
    ):
        return await self.create.execute(
            self.ctx(requested_by, now=now),
            NewRequest(
                request_type_id=request_type_id,
                title="Time correction",
                priority=priority,
                form_data=form_data,
            ),
        )

    async def stored(self, request_id: int) -> Request:
        return self.requests.requests[request_id]


@pytest.fixture
def harness() -> Harness:
    rules = FakeRuleRepo()
    directory = FakeDirectoryRepo()
    requests = FakeRequestRepo()
    tickets = FakeTicketRepo()
    activity = FakeActivityRepo()
    notifier = RecordingNotifier()
    evaluator = CustomLogicEvaluator()
    resolver = EligibilityResolver(directory, evaluator)
    escalation = EscalationService(tickets, requests, rules, activity, resolver, notifier)
    assign = AssignRequestUseCase(
        rules, requests, activity, resolver, escalation, notifier, evaluator
    )
    return Harness(
        rules=rules,
        directory=directory,
        requests=requests,
        tickets=tickets,
        activity=activity,
        notifier=notifier,
        evaluator=evaluator,
        resolver=resolver,
        escalation=escalation,
        assign=assign,
        batch_assign=BatchAssignUseCase(assign, requests),
        create=CreateRequestUseCase(requests, activity, assign),
        accept=AcceptRequestUseCase(requests, activity, escalation, notifier),
        complete=CompleteRequestUseCase(requests, activity, escalation, notifier),
        cancel=CancelRequestUseCase(requests, activity, escalation),
        timeline=GetTimelineUseCase(requests, activity),
        comment=AddCommentUseCase(requests, activity),
    )


# ─── SQL fixtures (sqlite + aiosqlite) ──────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reqflow.db'}")

    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINTs nest correctly
    @event.listens_for(engine.sync_engine, "connect")
    def _no_autobegin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s
