"""Seed development data: a few confirmed subscribers and one pending one."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert

from newsletter_service.config import settings
from newsletter_service.domain.value_objects.enums import SubscriptionStatus
from newsletter_service.infrastructure.db.models.subscriber import SubscriberModel
from newsletter_service.infrastructure.db.session import AsyncSessionLocal, engine
from newsletter_service.log import configure_logging

logger = logging.getLogger(__name__)

SUBSCRIBERS = [
    ("ursula@example.com", "Ursula Le Guin", SubscriptionStatus.CONFIRMED),
    ("terry@example.com", "Terry Pratchett", SubscriptionStatus.CONFIRMED),
    ("octavia@example.com", "Octavia Butler", SubscriptionStatus.CONFIRMED),
    ("iain@example.com", "Iain Banks", SubscriptionStatus.PENDING_CONFIRMATION),
]


async def seed() -> None:
    try:
        async with AsyncSessionLocal() as session:
            stmt = (
                pg_insert(SubscriberModel)
                .values([
                    {"email": email, "name": name, "status": status.value}
                    for email, name, status in SUBSCRIBERS
                ])
                .on_conflict_do_nothing(index_elements=["email"])
            )
            result = await session.execute(stmt)
            await session.commit()
        logger.info("Seeded %d of %d subscribers", result.rowcount, len(SUBSCRIBERS))
    finally:
        await engine.dispose()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
