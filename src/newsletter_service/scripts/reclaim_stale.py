"""Operator script: return delivery tasks stuck in flight to the queue now.

The worker runs the same sweep on every loop iteration; this is for when no
worker is running or the timeout must be overridden.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import timedelta

from newsletter_service.application.ports.clock import SystemClock
from newsletter_service.config import settings
from newsletter_service.infrastructure.db.session import engine
from newsletter_service.infrastructure.db.uow import new_uow
from newsletter_service.log import configure_logging
from newsletter_service.services import delivery_service

logger = logging.getLogger(__name__)


async def reclaim(older_than: float) -> None:
    try:
        async with new_uow() as uow:
            result = await delivery_service.reclaim_stale(
                uow,
                SystemClock(),
                timedelta(seconds=older_than),
                settings.DELIVERY_MAX_ATTEMPTS,
            )
        logger.info("Requeued %d, dead-lettered %d", result.requeued, result.dead_lettered)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--older-than",
        type=float,
        default=settings.DELIVERY_INFLIGHT_TIMEOUT,
        help="seconds a task must have been in flight (default: %(default)s)",
    )
    args = parser.parse_args()
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(reclaim(args.older_than))


if __name__ == "__main__":
    main()
