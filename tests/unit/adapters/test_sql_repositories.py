"""Tests for the SQLAlchemy repositories against sqlite + aiosqlite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reqflow.adapters.persistence.repositories import (
    SqlActivityRepository,
    SqlDirectoryRepository,
    SqlEscalationTicketRepository,
    SqlRequestRepository,
    SqlRuleRepository,
)
from reqflow.domain.entities.activity import ActivityComment, ActivityUpdate
from reqflow.domain.entities.assignment_rule import (
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
    AssignmentStrategy,
    RequestPriority,
    RequestStatus,
    RuleType,
    UpdateType,
    UserRole,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
H = timedelta(hours=1)


async def _new_request(repo, org="org-1", **kw):
    return await repo.save(
        Request(
            id=None, organization_id=org, request_type_id=1, title="Leave",
            requested_by="emp", created_at=T0, **kw,
        )
    )


def _rule(name, priority, request_type_id=1):
    return AssignmentRule(
        id=None,
        request_type_id=request_type_id,
        rule_name=name,
        priority_order=priority,
        rule_type=RuleType.CUSTOM,
        assignment_strategy=AssignmentStrategy.EXPERTISE_BASED,
        conditions=RuleConditions(roles=["manager"], custom_logic="form_data.amount > 10"),
        escalation=EscalationPolicy(
            timeout_hours=1.5, levels=(EscalationLevel(1, ("admin", "superadmin"), 6),)
        ),
    )


# ─── Requests ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_request_round_trip(session):
    repo = SqlRequestRepository(session)
    saved = await _new_request(
        repo, priority=RequestPriority.URGENT, form_data={"days": 3, "reason": "flu"}
    )

    loaded = await repo.get_by_id(saved.id)

    assert loaded.priority == RequestPriority.URGENT
    assert loaded.form_data == {"days": 3, "reason": "flu"}
    assert loaded.status == RequestStatus.SUBMITTED
    assert loaded.assigned_to == CandidatePool()
    assert loaded.created_at == T0
    assert await repo.get_by_id(9999) is None


@pytest.mark.asyncio
async def test_conditional_writes_guard_every_transition(session):
    repo = SqlRequestRepository(session)
    r = await _new_request(repo)
    pool = CandidatePool.of(["m1", "m2"])

    assert await repo.assign(r.id, pool, 7, T0)
    assert not await repo.assign(r.id, pool, 7, T0)

    assert await repo.try_accept(r.id, "m1", T0 + H)
    assert not await repo.try_accept(r.id, "m2", T0 + H)

    loaded = await repo.get_by_id(r.id)
    assert loaded.status == RequestStatus.IN_PROGRESS
    assert loaded.accepted_by == "m1"
    assert loaded.accepted_at == T0 + H
    assert loaded.assigned_to.to_list() == ["m1", "m2"]
    assert loaded.matched_rule_id == 7

    assert not await repo.try_complete(r.id, "m2", T0 + 2 * H, None)
    assert await repo.try_complete(r.id, "m1", T0 + 2 * H, "done")
    assert not await repo.try_complete(r.id, "m1", T0 + 2 * H, "again")
    assert not await repo.try_cancel(r.id, T0 + 3 * H)

    loaded = await repo.get_by_id(r.id)
    assert loaded.status == RequestStatus.COMPLETED
    assert loaded.completion_notes == "done"


@pytest.mark.asyncio
async def test_cancel_clears_acceptance(session):
    repo = SqlRequestRepository(session)
    r = await _new_request(repo)
    await repo.assign(r.id, CandidatePool.of(["m1"]), 1, T0)
    await repo.try_accept(r.id, "m1", T0)

    assert await repo.try_cancel(r.id, T0 + H)

    loaded = await repo.get_by_id(r.id)
    assert loaded.status == RequestStatus.CANCELLED
    assert loaded.accepted_by is None
    assert not await repo.try_accept(r.id, "m1", T0 + H)


@pytest.mark.asyncio
async def test_extend_pool_only_while_open(session):
    repo = SqlRequestRepository(session)
    r = await _new_request(repo)
    await repo.assign(r.id, CandidatePool.of(["m1"]), 1, T0)

    assert await repo.extend_pool(r.id, CandidatePool.of(["m1", "a1"]))
    assert (await repo.get_by_id(r.id)).assigned_to.to_list() == ["m1", "a1"]

    await repo.try_cancel(r.id, T0)
    assert not await repo.extend_pool(r.id, CandidatePool.of(["m1", "a1", "s1"]))

    accepted = await _new_request(repo)
    await repo.assign(accepted.id, CandidatePool.of(["m1"]), 1, T0)
    await repo.try_accept(accepted.id, "m1", T0)
    assert not await repo.extend_pool(accepted.id, CandidatePool.of(["m1", "a1"]))
    assert (await repo.get_by_id(accepted.id)).assigned_to.to_list() == ["m1"]


@pytest.mark.asyncio
async def test_unassigned_and_workload_queries(session):
    repo = SqlRequestRepository(session)
    waiting = await _new_request(repo)
    await _new_request(repo, org="org-2")
    busy = [await _new_request(repo) for _ in range(3)]
    for r in busy:
        await repo.assign(r.id, CandidatePool.of(["m1", "m2"]), 1, T0)
    await repo.try_accept(busy[0].id, "m1", T0)
    await repo.try_accept(busy[1].id, "m1", T0)
    await repo.try_accept(busy[2].id, "m2", T0)
    await repo.try_complete(busy[2].id, "m2", T0, None)

    assert [r.id for r in await repo.get_unassigned("org-1")] == [waiting.id]
    assert len(await repo.get_unassigned()) == 2
    assert await repo.count_open_assignments(["m1", "m2", "m3"]) == {"m1": 2, "m2": 0, "m3": 0}
    assert await repo.count_open_assignments([]) == {}

    recent = await repo.get_assigned_since("org-1", T0 - H)
    assert [r.id for r in recent] == [r.id for r in busy]
    assert await repo.get_assigned_since("org-1", T0 + H) == []


@pytest.mark.asyncio
async def test_workload_counts_pools_under_review(session):
    repo = SqlRequestRepository(session)
    for _ in range(3):
        r = await _new_request(repo)
        await repo.assign(r.id, CandidatePool.of(["busy"]), 1, T0)
    shared = await _new_request(repo)
    await repo.assign(shared.id, CandidatePool.of(["busy", "idle"]), 1, T0)
    await repo.try_accept(shared.id, "busy", T0)

    assert await repo.count_open_assignments(["busy", "idle"]) == {"busy": 4, "idle": 0}


# ─── Escalation tickets ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_ticket_claim_is_optimistic(session):
    requests = SqlRequestRepository(session)
    tickets = SqlEscalationTicketRepository(session)
    r = await _new_request(requests)
    await tickets.upsert(EscalationTicket(request_id=r.id, rule_id=1, current_level=0, deadline_at=T0))

    due = await tickets.find_due(T0, 10)
    assert [t.request_id for t in due] == [r.id]
    version = due[0].version

    assert await tickets.claim(r.id, version, "worker-a")
    assert not await tickets.claim(r.id, version, "worker-b")

    stored = await tickets.get_by_request(r.id)
    assert stored.version == version + 1
    assert stored.claimed_by == "worker-a"


@pytest.mark.asyncio
async def test_ticket_update_and_due_window(session):
    requests = SqlRequestRepository(session)
    tickets = SqlEscalationTicketRepository(session)
    a = await _new_request(requests)
    b = await _new_request(requests)
    await tickets.upsert(EscalationTicket(request_id=a.id, rule_id=1, current_level=0, deadline_at=T0 + 2 * H))
    await tickets.upsert(EscalationTicket(request_id=b.id, rule_id=1, current_level=0, deadline_at=T0 + H))

    assert await tickets.find_due(T0, 10) == []
    assert [t.request_id for t in await tickets.find_due(T0 + 3 * H, 10)] == [b.id, a.id]
    assert [t.request_id for t in await tickets.find_due(T0 + 3 * H, 1)] == [b.id]

    ticket = await tickets.get_by_request(b.id)
    ticket.current_level = 1
    ticket.deadline_at = T0 + 5 * H
    ticket.target_roles = ("admin",)
    await tickets.update(ticket)

    stored = await tickets.get_by_request(b.id)
    assert stored.current_level == 1
    assert stored.deadline_at == T0 + 5 * H
    assert stored.target_roles == ("admin",)

    stored.exhausted = True
    await tickets.update(stored)
    assert [t.request_id for t in await tickets.find_due(T0 + 10 * H, 10)] == [a.id]
    assert [t.request_id for t in await tickets.list_exhausted()] == [b.id]

    await tickets.delete_by_request(a.id)
    assert await tickets.get_by_request(a.id) is None


@pytest.mark.asyncio
async def test_ticket_upsert_replaces_existing(session):
    requests = SqlRequestRepository(session)
    tickets = SqlEscalationTicketRepository(session)
    r = await _new_request(requests)
    await tickets.upsert(EscalationTicket(request_id=r.id, rule_id=1, current_level=2, deadline_at=T0, exhausted=True))

    fresh = await tickets.upsert(
        EscalationTicket(request_id=r.id, rule_id=3, current_level=0, deadline_at=T0 + H)
    )

    stored = await tickets.get_by_request(r.id)
    assert (stored.rule_id, stored.current_level, stored.exhausted) == (3, 0, False)
    assert stored.version == fresh.version == 1


# ─── Activity ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_activity_shares_one_write_order(session):
    requests = SqlRequestRepository(session)
    activity = SqlActivityRepository(session)
    r = await _new_request(requests)

    created = await activity.add_update(
        ActivityUpdate(
            id=None, request_id=r.id, author_id="emp", created_at=T0,
            update_type=UpdateType.CREATED, title="Request submitted",
            new_status=RequestStatus.SUBMITTED,
        )
    )
    comment = await activity.add_comment(
        ActivityComment(id=None, request_id=r.id, author_id="m1", created_at=T0,
                        content="On it", is_internal=True)
    )

    assert created.id < comment.id
    updates = await activity.list_updates(r.id)
    assert [(u.update_type, u.new_status, u.created_at) for u in updates] == [
        (UpdateType.CREATED, RequestStatus.SUBMITTED, T0)
    ]
    comments = await activity.list_comments(r.id)
    assert [(c.content, c.is_internal) for c in comments] == [("On it", True)]
    assert await activity.has_update(r.id, UpdateType.CREATED)
    assert not await activity.has_update(r.id, UpdateType.UNASSIGNED)


@pytest.mark.asyncio
async def test_failed_activity_insert_keeps_the_transaction(session):
    requests = SqlRequestRepository(session)
    activity = SqlActivityRepository(session)
    r = await _new_request(requests)

    broken = await activity.add_update(
        ActivityUpdate(
            id=None, request_id=r.id, author_id=None, created_at=None,
            update_type=UpdateType.CREATED, title="no timestamp",
        )
    )

    assert broken.id is None
    assert await requests.try_cancel(r.id, T0)
    await session.commit()
    assert (await requests.get_by_id(r.id)).status == RequestStatus.CANCELLED
    assert await activity.list_updates(r.id) == []


# ─── Rules ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rule_round_trip(session):
    repo = SqlRuleRepository(session)
    saved = await repo.save(_rule("big expenses", 0))

    loaded = await repo.get_by_id(saved.id)

    assert loaded.rule_type == RuleType.CUSTOM
    assert loaded.assignment_strategy == AssignmentStrategy.EXPERTISE_BASED
    assert loaded.conditions.custom_logic == "form_data.amount > 10"
    assert loaded.escalation.timeout_hours == 1.5
    assert loaded.escalation.levels == (EscalationLevel(1, ("admin", "superadmin"), 6.0),)


@pytest.mark.asyncio
async def test_rule_listing_and_reorder(session):
    repo = SqlRuleRepository(session)
    a = await repo.save(_rule("a", 0))
    b = await repo.save(_rule("b", 1))
    c = await repo.save(_rule("c", 2))
    await repo.save(_rule("other type", 0, request_type_id=2))

    await repo.update_priorities(1, {c.id: 0, b.id: 1, a.id: 2})

    assert [r.rule_name for r in await repo.get_rules(1)] == ["c", "b", "a"]
    assert [r.rule_name for r in await repo.get_active_rules(1)] == ["c", "b", "a"]

    await repo.delete(b.id)
    assert [r.rule_name for r in await repo.get_rules(1)] == ["c", "a"]
    assert await repo.get_by_id(b.id) is None


@pytest.mark.asyncio
async def test_rule_update_keeps_priority(session):
    repo = SqlRuleRepository(session)
    await repo.save(_rule("a", 0))
    b = await repo.save(_rule("b", 1))

    b.rule_name = "b, managers only"
    b.priority_order = 0
    b.rule_type = RuleType.ROLE_BASED
    b.conditions = RuleConditions(roles=["manager"])
    b.escalation = EscalationPolicy(timeout_hours=4)
    b.is_active = False
    await repo.update(b)

    loaded = await repo.get_by_id(b.id)
    assert (loaded.rule_name, loaded.priority_order) == ("b, managers only", 1)
    assert loaded.rule_type == RuleType.ROLE_BASED
    assert loaded.conditions.custom_logic is None
    assert loaded.escalation.levels == ()
    assert [r.rule_name for r in await repo.get_active_rules(1)] == ["a"]


# ─── Directory ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_directory_lookups_are_org_scoped(session):
    repo = SqlDirectoryRepository(session)
    await repo.save(OrgMember("m1", "org-1", UserRole.MANAGER, job_role_id="hr", team_ids={"ops", "hq"}))
    await repo.save(OrgMember("m2", "org-1", UserRole.MANAGER, expertise_score=4))
    await repo.save(OrgMember("tl", "org-1", UserRole.TEAM_LEADER, job_role_id="hr", team_ids={"ops"}))
    await repo.save(OrgMember("x", "org-2", UserRole.MANAGER, job_role_id="hr", team_ids={"ops"}))

    managers = await repo.get_members_by_roles("org-1", ["manager"])
    assert [m.user_id for m in managers] == ["m1", "m2"]
    assert managers[0].team_ids == {"ops", "hq"}
    assert managers[1].expertise_score == 4

    hr = await repo.get_members_by_job_roles("org-1", ["hr"])
    assert [m.user_id for m in hr] == ["m1", "tl"]

    ops = await repo.get_members_by_teams("org-1", ["ops"])
    assert [m.user_id for m in ops] == ["m1", "tl"]

    assert await repo.get_members_by_roles("org-3", ["manager"]) == []
