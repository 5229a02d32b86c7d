from __future__ import annotations

from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.config import settings
from newsletter_service.infrastructure.db.errors import storage_errors
from newsletter_service.infrastructure.db.repositories.delivery import DeliveryQueueRepo
from newsletter_service.infrastructure.db.repositories.idempotency import IdempotencyRepo
from newsletter_service.infrastructure.db.repositories.issue import IssueRepo
from newsletter_service.infrastructure.db.repositories.subscriber import SubscriberReaderRepo
from newsletter_service.infrastructure.db.session import AsyncSessionLocal


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.issues = IssueRepo(session)
        self.subscribers = SubscriberReaderRepo(session)
        self.deliveries = DeliveryQueueRepo(session)
        self.idempotency = IdempotencyRepo(session, settings.IDEMPOTENCY_LOCK_TIMEOUT_MS)

    @storage_errors
    async def flush(self) -> None:
        await self._session.flush()

    @storage_errors
    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()
        await self._session.close()


def new_uow() -> SqlAlchemyUoW:
    """Unit of work on a fresh session; use as ``async with new_uow() as uow``."""
    return SqlAlchemyUoW(AsyncSessionLocal())
