"""Tests for DeferredNotifier: nothing leaves before flush."""

from __future__ import annotations

import logging

import pytest
from conftest import RecordingNotifier

from reqflow.adapters.notifications.deferred_notifier import DeferredNotifier
from reqflow.domain.entities.request import Request
from reqflow.domain.value_objects.enums import RequestPriority, RequestStatus


def _request(request_id=7):
    return Request(
        id=request_id, organization_id="org-1", request_type_id=1, title="Leave",
        requested_by="emp", priority=RequestPriority.MEDIUM, status=RequestStatus.UNDER_REVIEW,
    )


@pytest.mark.asyncio
async def test_calls_are_held_until_flush():
    target = RecordingNotifier()
    outbox = DeferredNotifier(target)

    await outbox.on_assigned(_request(), ["m1", "m2"])
    await outbox.on_escalated(_request(), ["a1"], 1)
    await outbox.on_admin_alert(_request(), ["a1"], "no candidates")

    assert target.events == []
    assert outbox.pending == 3

    assert await outbox.flush() == 3
    assert [e[0] for e in target.events] == ["assigned", "escalated", "admin_alert"]
    assert outbox.pending == 0
    assert await outbox.flush() == 0


@pytest.mark.asyncio
async def test_discard_drops_pending_calls(caplog):
    target = RecordingNotifier()
    outbox = DeferredNotifier(target)
    await outbox.on_accepted(_request(), "m1")
    await outbox.on_offers_withdrawn(_request(), ["m2"])

    with caplog.at_level(logging.INFO):
        outbox.discard()
    await outbox.flush()

    assert target.events == []
    assert "Dropping 2 notifications" in caplog.text


@pytest.mark.asyncio
async def test_failing_target_does_not_stop_the_flush(caplog):
    outbox = DeferredNotifier(RecordingNotifier(fail=True))
    await outbox.on_completed(_request(1))
    await outbox.on_completed(_request(2))

    assert await outbox.flush() == 2
    assert caplog.text.count("Notification OnCompleted failed") == 2
