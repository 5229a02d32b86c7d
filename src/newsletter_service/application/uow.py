from __future__ import annotations

from types import TracebackType
from typing import Callable, Protocol, Self

from newsletter_service.application.repositories.delivery import DeliveryQueue
from newsletter_service.application.repositories.idempotency import IdempotencyRepository
from newsletter_service.application.repositories.issue import IssueRepository
from newsletter_service.application.repositories.subscriber import SubscriberReader


class UnitOfWork(Protocol):
    issues: IssueRepository
    subscribers: SubscriberReader
    deliveries: DeliveryQueue
    idempotency: IdempotencyRepository

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...


UoWFactory = Callable[[], UnitOfWork]
