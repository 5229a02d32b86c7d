from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from newsletter_service.application.dto.delivery import DeliveryStats, ReclaimResult
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.value_objects.ids import IssueId


class DeliveryQueue(Protocol):
    async def enqueue(self, issue_id: IssueId, emails: Sequence[str], now: datetime) -> int:
        """Insert one pending task per email. Returns the number of rows created."""
        ...

    async def claim_batch(self, limit: int, now: datetime) -> list[DeliveryTask]:
        """Lock up to ``limit`` due pending tasks and mark them in flight.

        Rows already locked by another transaction are skipped, never waited
        on. The claim becomes visible to other workers on commit.
        """
        ...

    async def mark_done(self, task: DeliveryTask, now: datetime, *, retain: bool = False) -> bool: ...

    async def reschedule(
        self,
        task: DeliveryTask,
        next_attempt_at: datetime,
        error: str,
        now: datetime,
    ) -> bool: ...

    async def dead_letter(self, task: DeliveryTask, error: str, now: datetime) -> bool: ...

    async def release(self, task: DeliveryTask, now: datetime) -> bool:
        """Hand an unsent claim back as pending without charging an attempt."""
        ...

    async def reclaim_stale(
        self,
        claimed_before: datetime,
        now: datetime,
        max_attempts: int,
    ) -> ReclaimResult: ...

    async def list_dead_lettered(self, limit: int = 100) -> list[DeliveryTask]: ...

    async def requeue_dead_lettered(self, now: datetime, issue_id: IssueId | None = None) -> int: ...

    async def stats(self, issue_id: IssueId) -> DeliveryStats: ...
