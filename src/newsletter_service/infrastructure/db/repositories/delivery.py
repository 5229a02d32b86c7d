from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.application.dto.delivery import DeliveryStats, ReclaimResult
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.value_objects.enums import DeliveryState
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.infrastructure.db.errors import storage_errors
from newsletter_service.infrastructure.db.mappers import delivery_task as mapper
from newsletter_service.infrastructure.db.models.delivery_task import DeliveryTaskModel

# Five bound parameters per row keeps one chunk well under asyncpg's 32767 limit.
_ENQUEUE_CHUNK = 1000

_ABANDONED = "Abandoned in flight; presumed worker crash"


class DeliveryQueueRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _owned_claim(self, task: DeliveryTask):
        """Match the row only while it is still the claim this worker made."""
        return (
            (DeliveryTaskModel.newsletter_issue_id == task.issue_id)
            & (DeliveryTaskModel.subscriber_email == task.subscriber_email)
            & (DeliveryTaskModel.state == DeliveryState.IN_FLIGHT)
            & (DeliveryTaskModel.attempt_count == task.attempt_count)
        )

    @storage_errors
    async def enqueue(self, issue_id: IssueId, emails: Sequence[str], now: datetime) -> int:
        inserted = 0
        for start in range(0, len(emails), _ENQUEUE_CHUNK):
            rows = [
                {
                    "newsletter_issue_id": issue_id,
                    "subscriber_email": email,
                    "attempt_count": 0,
                    "next_attempt_at": now,
                    "state": DeliveryState.PENDING.value,
                }
                for email in emails[start:start + _ENQUEUE_CHUNK]
            ]
            stmt = (
                pg_insert(DeliveryTaskModel)
                .values(rows)
                .on_conflict_do_nothing(index_elements=["newsletter_issue_id", "subscriber_email"])
            )
            result = await self._session.execute(stmt)
            inserted += result.rowcount
        return inserted

    @storage_errors
    async def claim_batch(self, limit: int, now: datetime) -> list[DeliveryTask]:
        stmt = (
            select(DeliveryTaskModel)
            .where(
                DeliveryTaskModel.state == DeliveryState.PENDING,
                DeliveryTaskModel.next_attempt_at <= now,
            )
            .order_by(DeliveryTaskModel.next_attempt_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self._session.execute(stmt)
        rows = result.scalars().all()

        for row in rows:
            row.state = DeliveryState.IN_FLIGHT.value
            row.claimed_at = now
        if rows:
            await self._session.flush()

        return [mapper.model_to_entity(r) for r in rows]

    @storage_errors
    async def mark_done(self, task: DeliveryTask, now: datetime, *, retain: bool = False) -> bool:
        if retain:
            stmt = (
                update(DeliveryTaskModel)
                .where(self._owned_claim(task))
                .values(
                    state=DeliveryState.DONE.value,
                    attempt_count=task.attempt_count + 1,
                    claimed_at=None,
                    last_error=None,
                    updated_at=now,
                )
            )
        else:
            stmt = delete(DeliveryTaskModel).where(self._owned_claim(task))
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    @storage_errors
    async def reschedule(
        self,
        task: DeliveryTask,
        next_attempt_at: datetime,
        error: str,
        now: datetime,
    ) -> bool:
        stmt = (
            update(DeliveryTaskModel)
            .where(self._owned_claim(task))
            .values(
                state=DeliveryState.PENDING.value,
                attempt_count=task.attempt_count + 1,
                next_attempt_at=next_attempt_at,
                claimed_at=None,
                last_error=error,
                updated_at=now,
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    @storage_errors
    async def dead_letter(self, task: DeliveryTask, error: str, now: datetime) -> bool:
        stmt = (
            update(DeliveryTaskModel)
            .where(self._owned_claim(task))
            .values(
                state=DeliveryState.DEAD_LETTERED.value,
                attempt_count=task.attempt_count + 1,
                claimed_at=None,
                last_error=error,
                updated_at=now,
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    @storage_errors
    async def release(self, task: DeliveryTask, now: datetime) -> bool:
        stmt = (
            update(DeliveryTaskModel)
            .where(self._owned_claim(task))
            .values(
                state=DeliveryState.PENDING.value,
                next_attempt_at=now,
                claimed_at=None,
                updated_at=now,
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    @storage_errors
    async def reclaim_stale(

        self,
        claimed_before: datetime,
        now: datetime,
        max_attempts: int,
    ) -> ReclaimResult:
        stale = (DeliveryTaskModel.state == DeliveryState.IN_FLIGHT) & (
            DeliveryTaskModel.claimed_at < claimed_before
        )
        exhausted = await self._session.execute(
            update(DeliveryTaskModel)
            .where(stale, DeliveryTaskModel.attempt_count + 1 >= max_attempts)
            .values(
                state=DeliveryState.DEAD_LETTERED.value,
                attempt_count=DeliveryTaskModel.attempt_count + 1,
                claimed_at=None,
                last_error=_ABANDONED,
                updated_at=now,
            )
        )
        requeued = await self._session.execute(
            update(DeliveryTaskModel)
            .where(stale)
            .values(
                state=DeliveryState.PENDING.value,
                attempt_count=DeliveryTaskModel.attempt_count + 1,
                next_attempt_at=now,
                claimed_at=None,
                last_error=_ABANDONED,
                updated_at=now,
            )
        )
        return ReclaimResult(requeued=requeued.rowcount, dead_lettered=exhausted.rowcount)

    @storage_errors
    async def list_dead_lettered(self, limit: int = 100) -> list[DeliveryTask]:
        stmt = (
            select(DeliveryTaskModel)
            .where(DeliveryTaskModel.state == DeliveryState.DEAD_LETTERED)
            .order_by(DeliveryTaskModel.updated_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(r) for r in result.scalars().all()]

    @storage_errors
    async def requeue_dead_lettered(self, now: datetime, issue_id: IssueId | None = None) -> int:
        stmt = (
            update(DeliveryTaskModel)
            .where(DeliveryTaskModel.state == DeliveryState.DEAD_LETTERED)
            .values(
                state=DeliveryState.PENDING.value,
                attempt_count=0,
                next_attempt_at=now,
                updated_at=now,
            )
        )
        if issue_id is not None:
            stmt = stmt.where(DeliveryTaskModel.newsletter_issue_id == issue_id)
        result = await self._session.execute(stmt)
        return result.rowcount

    @storage_errors
    async def stats(self, issue_id: IssueId) -> DeliveryStats:
        stmt = (
            select(DeliveryTaskModel.state, func.count())
            .where(DeliveryTaskModel.newsletter_issue_id == issue_id)
            .group_by(DeliveryTaskModel.state)
        )
        result = await self._session.execute(stmt)
        counts = {state: count for state, count in result.all()}
        return DeliveryStats(
            issue_id=issue_id,
            pending=counts.get(DeliveryState.PENDING.value, 0),
            in_flight=counts.get(DeliveryState.IN_FLIGHT.value, 0),
            done=counts.get(DeliveryState.DONE.value, 0),
            dead_lettered=counts.get(DeliveryState.DEAD_LETTERED.value, 0),
        )
