"""StrategyPolicy — order the eligible set according to the rule's strategy."""

from __future__ import annotations

from reqflow.domain.entities.org_member import OrgMember
from reqflow.domain.value_objects.candidate_pool import CandidatePool
from reqflow.domain.value_objects.enums import AssignmentStrategy


def rank_candidates(
    members: list[OrgMember],
    strategy: AssignmentStrategy,
    workload: dict[str, int] | None = None,
) -> CandidatePool:
    """Rank eligible members without dropping any of them.

    Every member stays in the pool and may accept; the order only decides
    who is offered the request first in notifications and UIs.

    1. first_available: resolver order unchanged.
    2. load_balanced: fewest in-progress requests first, then user id.
    3. expertise_based: most senior role first, then highest expertise
       score, then user id.

    Args:
        members: de-duplicated eligible members from the resolver.
        strategy: the matched rule's assignment strategy.
        workload: open assignment counts per user id (load_balanced only).

    Returns:
        CandidatePool holding the full eligible set in rank order.
    """
    if strategy == AssignmentStrategy.LOAD_BALANCED:
        loads = workload or {}
        ordered = sorted(members, key=lambda m: (loads.get(m.user_id, 0), m.user_id))
    elif strategy == AssignmentStrategy.EXPERTISE_BASED:
        ordered = sorted(
            members,
            key=lambda m: (-m.role.seniority, -m.expertise_score, m.user_id),
        )
    else:
        ordered = list(members)

    return CandidatePool.of(m.user_id for m in ordered)
