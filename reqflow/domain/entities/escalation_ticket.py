"""EscalationTicket entity — the persisted deadline of one open request."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class EscalationTicket:
    request_id: int
    rule_id: int
    current_level: int
    deadline_at: datetime
    target_roles: tuple[str, ...] = ()
    exhausted: bool = False
    version: int = 0
    claimed_by: str | None = None

    def is_due(self, now: datetime) -> bool:
        return not self.exhausted and self.deadline_at <= now
