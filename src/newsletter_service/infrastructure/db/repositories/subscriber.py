from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.domain.value_objects.enums import SubscriptionStatus
from newsletter_service.infrastructure.db.errors import storage_errors
from newsletter_service.infrastructure.db.models.subscriber import SubscriberModel


class SubscriberReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @storage_errors
    async def list_confirmed_emails(self) -> list[str]:
        stmt = (
            select(SubscriberModel.email)
            .where(SubscriberModel.status == SubscriptionStatus.CONFIRMED)
            .order_by(SubscriberModel.subscribed_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
