"""RuleMatchingPolicy — pick the first applicable rule for a request."""

from __future__ import annotations

import logging
from typing import Any

from reqflow.domain.entities.assignment_rule import AssignmentRule
from reqflow.domain.errors import CustomLogicError, RuleConfigurationError
from reqflow.domain.policies.custom_logic import CustomLogicEvaluator
from reqflow.domain.value_objects.enums import RuleType, UserRole

logger = logging.getLogger(__name__)


def match_rule(
    rules: list[AssignmentRule],
    attributes: dict[str, Any],
    evaluator: CustomLogicEvaluator,
) -> AssignmentRule | None:
    """Return the first active rule that applies, or None when unmatched.

    Rules are walked in ascending ``priority_order``. Non-custom rules match
    unconditionally; custom rules evaluate their predicate against
    *attributes* (``{"priority", "form_data"}``). A predicate that fails to
    parse or blows its budget counts as a non-match.

    Two rules sharing a priority is a configuration error. The tie is
    logged and broken by the lower rule id so the outcome stays
    deterministic.

    Args:
        rules: candidate rules for one request type, in any order.
        attributes: request attributes visible to custom predicates.
        evaluator: bounded evaluator for custom predicates.

    Returns:
        The matched rule, or None.
    """
    active = sorted(
        (r for r in rules if r.is_active),
        key=lambda r: (r.priority_order, r.id if r.id is not None else 0),
    )

    seen_priorities: dict[int, AssignmentRule] = {}
    for rule in active:
        first = seen_priorities.setdefault(rule.priority_order, rule)
        if first is not rule:
            logger.error(
                "Rules %s and %s share priority %d for request type %s; using rule %s",
                first.id, rule.id, rule.priority_order, rule.request_type_id, first.id,
            )
            continue

        if not rule.is_custom():
            return rule

        expr = rule.conditions.custom_logic or ""
        try:
            if evaluator.evaluate(expr, attributes):
                return rule
        except CustomLogicError as exc:
            logger.warning("Rule %s custom logic rejected: %s", rule.id, exc)

    return None


def validate_rule(rule: AssignmentRule, evaluator: CustomLogicEvaluator | None = None) -> None:
    """Reject a rule definition that could never be routed correctly.

    Raises:
        RuleConfigurationError: on missing conditions, unknown roles or
            malformed escalation levels.
    """
    if not rule.rule_name.strip():
        raise RuleConfigurationError("Rule name is required")

    conditions = rule.conditions
    if rule.rule_type == RuleType.ROLE_BASED and not conditions.roles:
        raise RuleConfigurationError("Role-based rules need at least one role")
    if rule.rule_type == RuleType.JOB_ROLE_BASED and not conditions.job_roles:
        raise RuleConfigurationError("Job-role rules need at least one job role")
    if rule.rule_type == RuleType.TEAM_HIERARCHY and not conditions.team_ids:
        raise RuleConfigurationError("Team rules need at least one team")
    if rule.rule_type == RuleType.CUSTOM:
        if not (conditions.custom_logic or "").strip():
            raise RuleConfigurationError("Custom rules need an expression")
        if evaluator is not None:
            evaluator.compile(conditions.custom_logic)

    _check_roles(conditions.roles)

    policy = rule.escalation
    if policy.timeout_hours <= 0:
        raise RuleConfigurationError("Escalation timeout must be positive")
    for index, level in enumerate(policy.levels, start=1):
        if level.level != index:
            raise RuleConfigurationError(
                f"Escalation levels must be numbered 1..N, found {level.level} at position {index}"
            )
        if level.timeout_hours <= 0:
            raise RuleConfigurationError(f"Escalation level {index} needs a positive timeout")
        if not level.roles:
            raise RuleConfigurationError(f"Escalation level {index} needs at least one role")
        _check_roles(level.roles)


def check_priority_order(rules: list[AssignmentRule]) -> None:
    """Priorities of one request type must be unique and run 0..n-1."""
    priorities = sorted(r.priority_order for r in rules)
    if priorities != list(range(len(rules))):
        raise RuleConfigurationError(
            f"Rule priorities must be unique and contiguous, got {priorities}"
        )


def _check_roles(roles) -> None:
    known = {role.value for role in UserRole}
    unknown = [r for r in roles if r not in known]
    if unknown:
        raise RuleConfigurationError(f"Unknown roles: {', '.join(unknown)}")
