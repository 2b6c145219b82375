"""Port interface for the append-only activity log."""

from abc import ABC, abstractmethod

from reqflow.domain.entities.activity import ActivityComment, ActivityUpdate
from reqflow.domain.value_objects.enums import UpdateType


class ActivityRepository(ABC):
    @abstractmethod
    async def add_update(self, entry: ActivityUpdate) -> ActivityUpdate:
        ...

    @abstractmethod
    async def add_comment(self, comment: ActivityComment) -> ActivityComment:
        ...

    @abstractmethod
    async def list_updates(self, request_id: int) -> list[ActivityUpdate]:
        ...

    @abstractmethod
    async def list_comments(self, request_id: int) -> list[ActivityComment]:
        ...

    @abstractmethod
    async def has_update(self, request_id: int, update_type: UpdateType) -> bool:
        ...
