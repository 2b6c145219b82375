"""Port interface for outbound notifications.

Implementations must not block the caller on delivery; a failed delivery
never undoes a state transition.
"""

from abc import ABC, abstractmethod

from reqflow.domain.entities.request import Request


class NotificationPort(ABC):
    @abstractmethod
    async def on_assigned(self, request: Request, candidates: list[str]) -> None:
        ...

    @abstractmethod
    async def on_escalated(self, request: Request, new_candidates: list[str], level: int) -> None:
        ...

    @abstractmethod
    async def on_accepted(self, request: Request, user_id: str) -> None:
        ...

    @abstractmethod
    async def on_offers_withdrawn(self, request: Request, user_ids: list[str]) -> None:
        """The request was taken; stop prompting these candidates."""
        ...

    @abstractmethod
    async def on_completed(self, request: Request) -> None:
        ...

    @abstractmethod
    async def on_admin_alert(self, request: Request, recipients: list[str], reason: str) -> None:
        ...
