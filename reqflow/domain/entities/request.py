"""Request entity — an employee-initiated unit of work awaiting an owner."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from reqflow.domain.value_objects.candidate_pool import CandidatePool
from reqflow.domain.value_objects.enums import (
    OPEN_STATUSES,
    RequestPriority,
    RequestStatus,
)


@dataclass
class Request:
    id: int | None
    organization_id: str
    request_type_id: int
    title: str
    requested_by: str
    description: str | None = None
    priority: RequestPriority = RequestPriority.MEDIUM
    form_data: dict[str, Any] = field(default_factory=dict)
    status: RequestStatus = RequestStatus.SUBMITTED
    assigned_to: CandidatePool = field(default_factory=CandidatePool)
    matched_rule_id: int | None = None
    assigned_at: datetime | None = None
    accepted_by: str | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None
    completion_notes: str | None = None
    created_at: datetime | None = None

    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_assigned(self) -> bool:
        return bool(self.assigned_to)

    def match_attributes(self) -> dict[str, Any]:
        """Attributes visible to custom rule predicates."""
        return {"priority": self.priority, "form_data": dict(self.form_data)}
