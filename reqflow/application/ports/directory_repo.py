"""Port interface for the organization directory."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from reqflow.domain.entities.org_member import OrgMember


class DirectoryRepository(ABC):
    @abstractmethod
    async def get_members_by_roles(
        self, organization_id: str, roles: Iterable[str]
    ) -> list[OrgMember]:
        ...

    @abstractmethod
    async def get_members_by_job_roles(
        self, organization_id: str, job_role_ids: Iterable[str]
    ) -> list[OrgMember]:
        ...

    @abstractmethod
    async def get_members_by_teams(
        self, organization_id: str, team_ids: Iterable[str]
    ) -> list[OrgMember]:
        ...

    @abstractmethod
    async def save(self, member: OrgMember) -> OrgMember:
        ...
