"""Port interface for escalation ticket persistence."""

from abc import ABC, abstractmethod
from datetime import datetime

from reqflow.domain.entities.escalation_ticket import EscalationTicket


class EscalationTicketRepository(ABC):
    @abstractmethod
    async def upsert(self, ticket: EscalationTicket) -> EscalationTicket:
        ...

    @abstractmethod
    async def get_by_request(self, request_id: int) -> EscalationTicket | None:
        ...

    @abstractmethod
    async def delete_by_request(self, request_id: int) -> None:
        ...

    @abstractmethod
    async def find_due(self, now: datetime, limit: int) -> list[EscalationTicket]:
        """Non-exhausted tickets whose deadline has passed, oldest first."""
        ...

    @abstractmethod
    async def claim(self, request_id: int, version: int, worker_id: str) -> bool:
        """Bump the ticket version if it is still *version*.

        Returns False when another worker got there first.
        """
        ...

    @abstractmethod
    async def update(self, ticket: EscalationTicket) -> None:
        """Persist level, deadline, target roles and exhausted flag."""
        ...

    @abstractmethod
    async def list_exhausted(self) -> list[EscalationTicket]:
        ...
