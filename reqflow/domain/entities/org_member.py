"""OrgMember entity — a directory user who may be offered requests."""

from dataclasses import dataclass, field

from reqflow.domain.value_objects.enums import UserRole


@dataclass
class OrgMember:
    user_id: str
    organization_id: str
    role: UserRole
    job_role_id: str | None = None
    team_ids: set[str] = field(default_factory=set)
    expertise_score: int = 0

    def in_team(self, team_id: str) -> bool:
        return team_id in self.team_ids
