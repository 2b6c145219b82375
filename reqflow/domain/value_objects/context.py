"""RequestContext value object — explicit caller identity for engine calls."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RequestContext:
    organization_id: str
    user_id: str
    now: datetime = field(default_factory=utc_now)
