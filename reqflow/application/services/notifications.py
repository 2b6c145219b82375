"""Best-effort notification dispatch shared by the use cases."""

from __future__ import annotations

import logging
from collections.abc import Awaitable

logger = logging.getLogger(__name__)


async def notify_safely(call: Awaitable[None], event: str, request_id: int | None) -> None:
    """Await a notifier call; delivery problems are logged, never raised."""
    try:
        await call
    except Exception:
        logger.exception("Notification %s failed for request %s", event, request_id)
