"""CandidatePool value object — immutable ordered set of user IDs."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class CandidatePool:
    """Users entitled to act on a request, in notify/display order.

    Order matters for ranking only; membership is what decides who may
    accept.
    """

    user_ids: tuple[str, ...] = ()

    @classmethod
    def of(cls, user_ids: Iterable[str]) -> CandidatePool:
        seen: dict[str, None] = {}
        for uid in user_ids:
            uid = uid.strip() if uid else ""
            if uid:
                seen.setdefault(uid, None)
        return cls(tuple(seen))

    @classmethod
    def from_raw(cls, raw: str | Iterable[str] | None) -> CandidatePool:
        """Build a pool from a list or a legacy comma-joined string."""
        if raw is None:
            return cls()
        if isinstance(raw, str):
            return cls.of(raw.split(","))
        return cls.of(raw)

    def union(self, other: Iterable[str]) -> CandidatePool:
        """Existing members keep their position; new ones are appended."""
        return CandidatePool.of([*self.user_ids, *other])

    def difference(self, other: Iterable[str]) -> CandidatePool:
        excluded = set(other)
        return CandidatePool(tuple(uid for uid in self.user_ids if uid not in excluded))

    def __contains__(self, user_id: object) -> bool:
        return user_id in self.user_ids

    def __iter__(self) -> Iterator[str]:
        return iter(self.user_ids)

    def __len__(self) -> int:
        return len(self.user_ids)

    def __bool__(self) -> bool:
        return bool(self.user_ids)

    def to_list(self) -> list[str]:
        return list(self.user_ids)
