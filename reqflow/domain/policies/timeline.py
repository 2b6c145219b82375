"""TimelinePolicy — merge updates and comments into one chronological feed."""

from __future__ import annotations

from reqflow.domain.entities.activity import ActivityComment, ActivityEntry, ActivityUpdate


def merge_timeline(
    updates: list[ActivityUpdate],
    comments: list[ActivityComment],
    include_internal: bool = True,
) -> list[ActivityEntry]:
    """Stable sort by ``created_at`` ascending, ties broken by insertion id.

    Updates and comments share one id sequence, so the id tie-break
    reflects the order in which entries were written.
    """
    visible_comments = [c for c in comments if include_internal or not c.is_internal]
    entries: list[ActivityEntry] = [*updates, *visible_comments]
    # Unsaved entries (id None) sort after persisted ones with the same timestamp
    return sorted(
        entries,
        key=lambda e: (e.created_at, e.id is None, e.id if e.id is not None else 0),
    )
