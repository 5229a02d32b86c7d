"""One-time script: create the service's tables if they do not exist."""
from __future__ import annotations

import asyncio
import logging

from newsletter_service.config import settings
from newsletter_service.infrastructure.db import models  # noqa: F401  (registers tables)
from newsletter_service.infrastructure.db.base import Base
from newsletter_service.infrastructure.db.session import engine
from newsletter_service.log import configure_logging

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ensured tables: %s", ", ".join(sorted(Base.metadata.tables)))
    finally:
        await engine.dispose()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(create_tables())


if __name__ == "__main__":
    main()
