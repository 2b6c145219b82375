"""Port interface for request persistence.

The ``try_*`` methods are single conditional writes. They return True when
the row was changed and False when the guard did not hold; callers never
read-then-write.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from reqflow.domain.entities.request import Request
from reqflow.domain.value_objects.candidate_pool import CandidatePool


class RequestRepository(ABC):
    @abstractmethod
    async def save(self, request: Request) -> Request:
        ...

    @abstractmethod
    async def get_by_id(self, request_id: int) -> Request | None:
        ...

    @abstractmethod
    async def get_for_update(self, request_id: int) -> Request | None:
        """Read a request and hold its row lock until the transaction ends.

        Writers that also touch the escalation ticket take this lock first.
        """
        ...

    @abstractmethod
    async def get_unassigned(self, organization_id: str | None = None) -> list[Request]:
        """Submitted requests that still have an empty candidate pool."""
        ...

    @abstractmethod
    async def assign(
        self, request_id: int, pool: CandidatePool, rule_id: int, now: datetime
    ) -> bool:
        """submitted → under_review with the given pool."""
        ...

    @abstractmethod
    async def extend_pool(self, request_id: int, pool: CandidatePool) -> bool:
        """Replace the pool with a superset while nobody has accepted yet."""
        ...

    @abstractmethod
    async def try_accept(self, request_id: int, user_id: str, now: datetime) -> bool:
        """CompareAndSwap on accepted_by: set only while it is empty."""
        ...

    @abstractmethod
    async def try_complete(
        self, request_id: int, user_id: str, now: datetime, notes: str | None
    ) -> bool:
        ...

    @abstractmethod
    async def try_cancel(self, request_id: int, now: datetime) -> bool:
        ...

    @abstractmethod
    async def count_open_assignments(self, user_ids: Iterable[str]) -> dict[str, int]:
        """Open workload per user, zero for idle users.

        Counts under-review requests whose pool holds the user plus
        in-progress requests the user accepted.
        """
        ...

    @abstractmethod
    async def get_assigned_since(self, organization_id: str, since: datetime) -> list[Request]:
        ...
