"""Run the escalation scheduler outside the API process.

Usage:
    python -m reqflow.tools.run_scheduler          # run forever
    python -m reqflow.tools.run_scheduler --once   # single scan, then exit
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from reqflow.adapters.persistence.database import engine
from reqflow.infrastructure.api.dependencies import notifier
from reqflow.infrastructure.scheduler.escalation_scheduler import EscalationScheduler

logger = logging.getLogger(__name__)


async def main(once: bool) -> None:
    scheduler = EscalationScheduler()
    try:
        if once:
            summary = await scheduler.run_once()
            logger.info(
                "Scanned %d tickets: %d escalated, %d exhausted",
                summary.scanned, summary.escalated, summary.exhausted,
            )
            return

        scheduler.start()
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
        await notifier.aclose()
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="reqflow escalation scheduler")
    parser.add_argument("--once", action="store_true", help="Run a single scan and exit")
    args = parser.parse_args()
    asyncio.run(main(args.once))
