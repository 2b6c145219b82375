"""Rule management — list, create, edit, reorder and delete assignment rules."""

from __future__ import annotations

import logging
from dataclasses import replace

from reqflow.application.ports.rule_repo import RuleRepository
from reqflow.domain.entities.assignment_rule import AssignmentRule
from reqflow.domain.errors import RuleConfigurationError
from reqflow.domain.policies.custom_logic import CustomLogicEvaluator
from reqflow.domain.policies.rule_matching import check_priority_order, validate_rule

logger = logging.getLogger(__name__)


class GetEligibleRulesUseCase:
    def __init__(self, rule_repo: RuleRepository):
        self._rules = rule_repo

    async def execute(self, request_type_id: int, include_inactive: bool = False) -> list[AssignmentRule]:
        if include_inactive:
            return await self._rules.get_rules(request_type_id)
        return await self._rules.get_active_rules(request_type_id)


class CreateRuleUseCase:
    def __init__(self, rule_repo: RuleRepository, evaluator: CustomLogicEvaluator):
        self._rules = rule_repo
        self._evaluator = evaluator

    async def execute(self, rule: AssignmentRule) -> AssignmentRule:
        """Validate *rule* and append it after the existing ones."""
        validate_rule(rule, self._evaluator)
        existing = await self._rules.get_rules(rule.request_type_id)
        saved = await self._rules.save(replace(rule, id=None, priority_order=len(existing)))
        logger.info(
            "Rule %s '%s' created for request type %s at priority %d",
            saved.id, saved.rule_name, saved.request_type_id, saved.priority_order,
        )
        return saved


class UpdateRuleUseCase:
    def __init__(self, rule_repo: RuleRepository, evaluator: CustomLogicEvaluator):
        self._rules = rule_repo
        self._evaluator = evaluator

    async def execute(self, rule_id: int, changes: AssignmentRule) -> AssignmentRule | None:
        """Replace the editable fields of rule *rule_id* with those of *changes*.

        The rule keeps its id, request type and position. Returns None when
        the rule does not exist.

        Raises:
            RuleConfigurationError: if the edited rule is invalid or
                *changes* names another request type.
        """
        current = await self._rules.get_by_id(rule_id)
        if current is None:
            return None
        if changes.request_type_id != current.request_type_id:
            raise RuleConfigurationError(
                f"Rule {rule_id} belongs to request type {current.request_type_id}"
            )

        edited = replace(changes, id=rule_id, priority_order=current.priority_order)
        validate_rule(edited, self._evaluator)
        saved = await self._rules.update(edited)
        logger.info("Rule %s '%s' updated (active=%s)", rule_id, saved.rule_name, saved.is_active)
        return saved

    async def set_active(self, rule_id: int, is_active: bool) -> AssignmentRule | None:
        current = await self._rules.get_by_id(rule_id)
        if current is None:
            return None
        return await self.execute(rule_id, replace(current, is_active=is_active))


class ReorderRulesUseCase:
    def __init__(self, rule_repo: RuleRepository):
        self._rules = rule_repo

    async def execute(self, request_type_id: int, ordered_ids: list[int]) -> list[AssignmentRule]:
        """Give the listed rules priorities 0..n-1 in list order.

        Raises:
            RuleConfigurationError: if *ordered_ids* is not exactly the rule
                set of the request type.
        """
        rules = await self._rules.get_rules(request_type_id)
        known = {r.id for r in rules}
        if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != known:
            raise RuleConfigurationError(
                f"Reorder must list every rule of request type {request_type_id} exactly once"
            )

        priorities = {rule_id: index for index, rule_id in enumerate(ordered_ids)}
        check_priority_order([replace(r, priority_order=priorities[r.id]) for r in rules])
        await self._rules.update_priorities(request_type_id, priorities)
        logger.info("Rules of request type %s reordered: %s", request_type_id, ordered_ids)
        return await self._rules.get_rules(request_type_id)


class DeleteRuleUseCase:
    def __init__(self, rule_repo: RuleRepository):
        self._rules = rule_repo

    async def execute(self, rule_id: int) -> bool:
        """Delete a rule and close the gap it leaves in the priorities."""
        rule = await self._rules.get_by_id(rule_id)
        if rule is None:
            return False

        await self._rules.delete(rule_id)
        remaining = await self._rules.get_rules(rule.request_type_id)
        priorities = {r.id: index for index, r in enumerate(remaining)}
        if any(r.priority_order != priorities[r.id] for r in remaining):
            await self._rules.update_priorities(rule.request_type_id, priorities)
        logger.info("Rule %s deleted from request type %s", rule_id, rule.request_type_id)
        return True
