"""Tests for timeline merging."""

from datetime import datetime, timedelta, timezone

from reqflow.domain.entities.activity import ActivityComment, ActivityUpdate
from reqflow.domain.policies.timeline import merge_timeline
from reqflow.domain.value_objects.enums import UpdateType

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _update(id_, minutes, update_type=UpdateType.CREATED):
    return ActivityUpdate(
        id=id_, request_id=1, author_id=None,
        created_at=T0 + timedelta(minutes=minutes),
        update_type=update_type, title=update_type.value,
    )


def _comment(id_, minutes, internal=False):
    return ActivityComment(
        id=id_, request_id=1, author_id="u",
        created_at=T0 + timedelta(minutes=minutes),
        content=f"c{id_}", is_internal=internal,
    )


def test_sorted_by_time():
    feed = merge_timeline(
        [_update(1, 0), _update(4, 30, UpdateType.ACCEPTED)],
        [_comment(2, 10), _comment(3, 20)],
    )
    assert [e.id for e in feed] == [1, 2, 3, 4]


def test_same_timestamp_keeps_insertion_order():
    feed = merge_timeline(
        [_update(3, 5, UpdateType.ASSIGNED), _update(1, 5)],
        [_comment(2, 5)],
    )
    assert [e.id for e in feed] == [1, 2, 3]


def test_unsaved_entries_sort_last_within_timestamp():
    feed = merge_timeline([_update(None, 5), _update(7, 5)], [])
    assert [e.id for e in feed] == [7, None]


def test_internal_comments_can_be_hidden():
    updates = [_update(1, 0)]
    comments = [_comment(2, 1), _comment(3, 2, internal=True)]
    assert [e.id for e in merge_timeline(updates, comments)] == [1, 2, 3]
    assert [e.id for e in merge_timeline(updates, comments, include_internal=False)] == [1, 2]


def test_empty():
    assert merge_timeline([], []) == []
