"""Response shaping for domain objects."""

from __future__ import annotations

from datetime import datetime

from reqflow.domain.entities.activity import ActivityEntry, ActivityUpdate
from reqflow.domain.entities.assignment_rule import AssignmentRule
from reqflow.domain.entities.escalation_ticket import EscalationTicket
from reqflow.domain.entities.request import Request


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_request(r: Request) -> dict:
    return {
        "id": r.id,
        "organization_id": r.organization_id,
        "request_type_id": r.request_type_id,
        "title": r.title,
        "description": r.description,
        "priority": r.priority.value,
        "form_data": r.form_data,
        "requested_by": r.requested_by,
        "status": r.status.value,
        "assigned_to": r.assigned_to.to_list(),
        "matched_rule_id": r.matched_rule_id,
        "assigned_at": _iso(r.assigned_at),
        "accepted_by": r.accepted_by,
        "accepted_at": _iso(r.accepted_at),
        "completed_at": _iso(r.completed_at),
        "completion_notes": r.completion_notes,
        "created_at": _iso(r.created_at),
    }


def serialize_rule(rule: AssignmentRule) -> dict:
    return {
        "id": rule.id,
        "request_type_id": rule.request_type_id,
        "rule_name": rule.rule_name,
        "priority_order": rule.priority_order,
        "rule_type": rule.rule_type.value,
        "rule_type_description": rule.rule_type.description,
        "assignment_strategy": rule.assignment_strategy.value,
        "strategy_description": rule.assignment_strategy.description,
        "is_active": rule.is_active,
        "conditions": {
            "roles": rule.conditions.roles,
            "job_roles": rule.conditions.job_roles,
            "team_ids": rule.conditions.team_ids,
            "custom_logic": rule.conditions.custom_logic,
        },
        "escalation_rules": {
            "timeout_hours": rule.escalation.timeout_hours,
            "escalation_levels": [
                {"level": lvl.level, "roles": list(lvl.roles), "timeout_hours": lvl.timeout_hours}
                for lvl in rule.escalation.levels
            ],
        },
    }


def serialize_entry(e: ActivityEntry) -> dict:
    data = {
        "id": e.id,
        "kind": e.kind,
        "request_id": e.request_id,
        "author_id": e.author_id,
        "created_at": _iso(e.created_at),
        "content": e.content,
    }
    if isinstance(e, ActivityUpdate):
        data.update(
            update_type=e.update_type.value,
            title=e.title,
            old_status=e.old_status.value if e.old_status else None,
            new_status=e.new_status.value if e.new_status else None,
        )
    else:
        data["is_internal"] = e.is_internal
    return data


def serialize_ticket(t: EscalationTicket) -> dict:
    return {
        "request_id": t.request_id,
        "rule_id": t.rule_id,
        "current_level": t.current_level,
        "deadline_at": _iso(t.deadline_at),
        "target_roles": list(t.target_roles),
        "exhausted": t.exhausted,
    }
