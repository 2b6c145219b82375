"""Assignment rule endpoints — list, create, edit, reorder, delete."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reqflow.adapters.persistence.database import get_session
from reqflow.application.use_cases.manage_rules import (
    CreateRuleUseCase,
    DeleteRuleUseCase,
    GetEligibleRulesUseCase,
    ReorderRulesUseCase,
    UpdateRuleUseCase,
)
from reqflow.domain.entities.assignment_rule import (
    DEFAULT_TIMEOUT_HOURS,
    AssignmentRule,
    EscalationLevel,
    EscalationPolicy,
    RuleConditions,
)
from reqflow.domain.errors import EngineError
from reqflow.domain.value_objects.enums import AssignmentStrategy, RuleType
from reqflow.infrastructure.api.dependencies import (
    get_create_rule_uc,
    get_delete_rule_uc,
    get_reorder_rules_uc,
    get_rules_uc,
    get_update_rule_uc,
)
from reqflow.infrastructure.api.errors import to_http
from reqflow.infrastructure.api.serializers import serialize_rule

router = APIRouter(prefix="/rules", tags=["rules"])


class ConditionsBody(BaseModel):
    roles: list[str] = Field(default_factory=list)
    job_roles: list[str] = Field(default_factory=list)
    team_ids: list[str] = Field(default_factory=list)
    custom_logic: str | None = None


class EscalationLevelBody(BaseModel):
    level: int
    roles: list[str]
    timeout_hours: float


class EscalationBody(BaseModel):
    timeout_hours: float = DEFAULT_TIMEOUT_HOURS
    escalation_levels: list[EscalationLevelBody] = Field(default_factory=list)


class RuleBody(BaseModel):
    request_type_id: int
    rule_name: str
    rule_type: RuleType
    assignment_strategy: AssignmentStrategy = AssignmentStrategy.FIRST_AVAILABLE
    is_active: bool = True
    conditions: ConditionsBody = Field(default_factory=ConditionsBody)
    escalation_rules: EscalationBody = Field(default_factory=EscalationBody)


class ReorderBody(BaseModel):
    request_type_id: int
    rule_ids: list[int]


class RuleStatusBody(BaseModel):
    is_active: bool


def _to_rule(body: RuleBody) -> AssignmentRule:
    return AssignmentRule(
        id=None,
        request_type_id=body.request_type_id,
        rule_name=body.rule_name,
        priority_order=0,
        rule_type=body.rule_type,
        assignment_strategy=body.assignment_strategy,
        conditions=RuleConditions(
            roles=body.conditions.roles,
            job_roles=body.conditions.job_roles,
            team_ids=body.conditions.team_ids,
            custom_logic=body.conditions.custom_logic or None,
        ),
        escalation=EscalationPolicy(
            timeout_hours=body.escalation_rules.timeout_hours,
            levels=tuple(
                EscalationLevel(level=lvl.level, roles=tuple(lvl.roles), timeout_hours=lvl.timeout_hours)
                for lvl in body.escalation_rules.escalation_levels
            ),
        ),
        is_active=body.is_active,
    )


@router.get("")
async def list_rules(
    request_type_id: int,
    include_inactive: bool = False,
    rules_uc: GetEligibleRulesUseCase = Depends(get_rules_uc),
):
    rules = await rules_uc.execute(request_type_id, include_inactive=include_inactive)
    return {"total": len(rules), "rules": [serialize_rule(r) for r in rules]}


@router.get("/types")
async def rule_types():
    """Descriptions shown by rule editors."""
    return {
        "rule_types": [{"value": t.value, "description": t.description} for t in RuleType],
        "strategies": [
            {"value": s.value, "description": s.description} for s in AssignmentStrategy
        ],
    }


@router.post("")
async def create_rule(
    body: RuleBody,
    create_uc: CreateRuleUseCase = Depends(get_create_rule_uc),
    session: AsyncSession = Depends(get_session),
):
    try:
        saved = await create_uc.execute(_to_rule(body))
    except EngineError as exc:
        raise to_http(exc)
    await session.commit()
    return serialize_rule(saved)


@router.put("/reorder")
async def reorder_rules(
    body: ReorderBody,
    reorder_uc: ReorderRulesUseCase = Depends(get_reorder_rules_uc),
    session: AsyncSession = Depends(get_session),
):
    try:
        rules = await reorder_uc.execute(body.request_type_id, body.rule_ids)
    except EngineError as exc:
        raise to_http(exc)
    await session.commit()
    return {"total": len(rules), "rules": [serialize_rule(r) for r in rules]}


@router.delete("/{rule_id}")
async def delete_rule(
    rule_id: int,
    delete_uc: DeleteRuleUseCase = Depends(get_delete_rule_uc),
    session: AsyncSession = Depends(get_session),
):
    if not await delete_uc.execute(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    await session.commit()
    return {"status": "deleted", "rule_id": rule_id}


@router.put("/{rule_id}")
async def update_rule(
    rule_id: int,
    body: RuleBody,
    update_uc: UpdateRuleUseCase = Depends(get_update_rule_uc),
    session: AsyncSession = Depends(get_session),
):
    try:
        saved = await update_uc.execute(rule_id, _to_rule(body))
    except EngineError as exc:
        raise to_http(exc)
    if saved is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    await session.commit()
    return serialize_rule(saved)


@router.patch("/{rule_id}")
async def set_rule_status(
    rule_id: int,
    body: RuleStatusBody,
    update_uc: UpdateRuleUseCase = Depends(get_update_rule_uc),
    session: AsyncSession = Depends(get_session),
):
    """Switch a rule on or off without touching its definition."""
    try:
        saved = await update_uc.set_active(rule_id, body.is_active)
    except EngineError as exc:
        raise to_http(exc)
    if saved is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    await session.commit()
    return serialize_rule(saved)
