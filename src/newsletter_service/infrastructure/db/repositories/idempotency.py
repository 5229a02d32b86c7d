from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.application.exceptions import ConflictError, StorageError
from newsletter_service.domain.entities.idempotency import IdempotencyRecord, SavedResponse
from newsletter_service.domain.value_objects.enums import IdempotencyState
from newsletter_service.domain.value_objects.ids import PrincipalId
from newsletter_service.infrastructure.db.errors import storage_errors
from newsletter_service.infrastructure.db.mappers import idempotency as mapper
from newsletter_service.infrastructure.db.models.idempotency import IdempotencyModel

LOCK_NOT_AVAILABLE = "55P03"


def _is_lock_timeout(exc: DBAPIError) -> bool:
    orig = exc.orig
    return LOCK_NOT_AVAILABLE in (
        getattr(orig, "sqlstate", None),
        getattr(orig, "pgcode", None),
    )


class IdempotencyRepo:
    def __init__(self, session: AsyncSession, lock_timeout_ms: int = 2000) -> None:
        self._session = session
        self._lock_timeout_ms = lock_timeout_ms

    @storage_errors
    async def get(self, principal_id: PrincipalId, key: str) -> IdempotencyRecord | None:
        stmt = (
            select(IdempotencyModel)
            .where(
                IdempotencyModel.principal_id == principal_id,
                IdempotencyModel.idempotency_key == key,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_record(model) if model else None

    @storage_errors
    async def try_start(self, principal_id: PrincipalId, key: str, now: datetime) -> bool:
        # Same-key inserts block on the unique index until the other
        # transaction ends. The wait is bounded: a duplicate that commits
        # within lock_timeout is replayed, a slower one is a ConflictError.
        # lock_timeout = 0 disables the limit in PostgreSQL, so use 1 to fail fast.
        await self._session.execute(text(f"SET LOCAL lock_timeout = {int(self._lock_timeout_ms)}"))
        stmt = (
            pg_insert(IdempotencyModel)
            .values(
                principal_id=principal_id,
                idempotency_key=key,
                state=IdempotencyState.IN_PROGRESS.value,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["principal_id", "idempotency_key"])
        )
        try:
            result = await self._session.execute(stmt)
        except DBAPIError as exc:
            if _is_lock_timeout(exc):
                raise ConflictError(
                    "A request with this idempotency key is still being processed"
                ) from exc
            raise
        await self._session.execute(text("SET LOCAL lock_timeout TO DEFAULT"))
        return result.rowcount == 1

    @storage_errors
    async def complete(self, principal_id: PrincipalId, key: str, response: SavedResponse) -> None:
        stmt = (
            update(IdempotencyModel)
            .where(
                IdempotencyModel.principal_id == principal_id,
                IdempotencyModel.idempotency_key == key,
                IdempotencyModel.state == IdempotencyState.IN_PROGRESS,
            )
            .values(**mapper.response_to_columns(response))
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise StorageError(f"Idempotency key {key!r} is not in progress for this principal")
