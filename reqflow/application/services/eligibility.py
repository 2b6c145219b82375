"""EligibilityResolver — turn a matched rule into concrete org members."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from reqflow.application.ports.directory_repo import DirectoryRepository
from reqflow.domain.entities.assignment_rule import AssignmentRule
from reqflow.domain.entities.org_member import OrgMember
from reqflow.domain.errors import CustomLogicError
from reqflow.domain.policies.custom_logic import CustomLogicEvaluator
from reqflow.domain.value_objects.enums import ADMIN_ROLES, RuleType

logger = logging.getLogger(__name__)


def _dedupe(members: Iterable[OrgMember]) -> list[OrgMember]:
    seen: set[str] = set()
    unique: list[OrgMember] = []
    for member in members:
        if member.user_id not in seen:
            seen.add(member.user_id)
            unique.append(member)
    return unique


class EligibilityResolver:
    """Resolves rules and escalation roles against the org directory.

    An empty result is a normal outcome; deciding what it means is left to
    the caller.
    """

    def __init__(self, directory: DirectoryRepository, evaluator: CustomLogicEvaluator):
        self._directory = directory
        self._evaluator = evaluator

    async def resolve(self, rule: AssignmentRule, organization_id: str) -> list[OrgMember]:
        conditions = rule.conditions

        if rule.rule_type == RuleType.ROLE_BASED:
            members = await self._directory.get_members_by_roles(organization_id, conditions.roles)
        elif rule.rule_type == RuleType.JOB_ROLE_BASED:
            members = await self._directory.get_members_by_job_roles(
                organization_id, conditions.job_roles
            )
        elif rule.rule_type == RuleType.TEAM_HIERARCHY:
            members = await self._directory.get_members_by_teams(
                organization_id, conditions.team_ids
            )
        else:
            roles = list(conditions.roles) or self._roles_from_logic(rule)
            if not roles:
                logger.info("Custom rule %s names no roles; nobody is eligible", rule.id)
                return []
            members = await self._directory.get_members_by_roles(organization_id, roles)

        return _dedupe(members)

    async def resolve_roles(self, roles: Iterable[str], organization_id: str) -> list[OrgMember]:
        roles = list(roles)
        if not roles:
            return []
        return _dedupe(await self._directory.get_members_by_roles(organization_id, roles))

    async def admin_ids(self, organization_id: str) -> list[str]:
        admins = await self.resolve_roles((r.value for r in ADMIN_ROLES), organization_id)
        return [m.user_id for m in admins]

    def _roles_from_logic(self, rule: AssignmentRule) -> list[str]:
        try:
            return self._evaluator.referenced_roles(rule.conditions.custom_logic or "")
        except CustomLogicError as exc:
            logger.warning("Rule %s custom logic unreadable: %s", rule.id, exc)
            return []
