"""Activity entries — structured updates and free-text comments on a request."""

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from reqflow.domain.value_objects.enums import RequestStatus, UpdateType


@dataclass(frozen=True)
class ActivityUpdate:
    id: int | None
    request_id: int
    author_id: str | None
    created_at: datetime
    update_type: UpdateType
    title: str
    content: str | None = None
    old_status: RequestStatus | None = None
    new_status: RequestStatus | None = None

    kind = "update"


@dataclass(frozen=True)
class ActivityComment:
    id: int | None
    request_id: int
    author_id: str | None
    created_at: datetime
    content: str
    is_internal: bool = False

    kind = "comment"


ActivityEntry = Union[ActivityUpdate, ActivityComment]
