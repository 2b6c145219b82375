"""Port interface for assignment rule persistence."""

from abc import ABC, abstractmethod

from reqflow.domain.entities.assignment_rule import AssignmentRule


class RuleRepository(ABC):
    @abstractmethod
    async def get_active_rules(self, request_type_id: int) -> list[AssignmentRule]:
        """Active rules of one request type, ordered by priority_order."""
        ...

    @abstractmethod
    async def get_rules(self, request_type_id: int) -> list[AssignmentRule]:
        """All rules of one request type, active or not."""
        ...

    @abstractmethod
    async def get_by_id(self, rule_id: int) -> AssignmentRule | None:
        ...

    @abstractmethod
    async def save(self, rule: AssignmentRule) -> AssignmentRule:
        ...

    @abstractmethod
    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        """Overwrite the editable fields of an existing rule. priority_order is left alone."""
        ...

    @abstractmethod
    async def update_priorities(self, request_type_id: int, priorities: dict[int, int]) -> None:
        """Rewrite priority_order for the given rule ids in one go."""
        ...

    @abstractmethod
    async def delete(self, rule_id: int) -> None:
        ...
