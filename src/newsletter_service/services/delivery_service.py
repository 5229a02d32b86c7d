"""Operator-facing views and repairs of the delivery queue."""
from __future__ import annotations

import logging
from datetime import timedelta

from newsletter_service.application.dto.delivery import ReclaimResult
from newsletter_service.application.ports.clock import Clock
from newsletter_service.application.uow import UnitOfWork
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.value_objects.ids import IssueId

logger = logging.getLogger(__name__)


async def list_dead_letters(uow: UnitOfWork, limit: int = 100) -> list[DeliveryTask]:
    return await uow.deliveries.list_dead_lettered(limit)


async def requeue_dead_letters(
    uow: UnitOfWork,
    clock: Clock,
    issue_id: IssueId | None = None,
) -> int:
    """Give dead-lettered tasks a fresh retry budget. Never done automatically."""
    count = await uow.deliveries.requeue_dead_lettered(clock.now(), issue_id)
    await uow.commit()
    logger.info("Requeued %d dead-lettered tasks (issue=%s)", count, issue_id)
    return count


async def reclaim_stale(
    uow: UnitOfWork,
    clock: Clock,
    inflight_timeout: timedelta,
    max_attempts: int,
) -> ReclaimResult:
    """Return tasks stuck in flight past ``inflight_timeout`` to the queue.

    The abandoned attempt counts against the task's budget, so a recipient
    that keeps crashing the worker ends up dead-lettered.
    """
    now = clock.now()
    result = await uow.deliveries.reclaim_stale(now - inflight_timeout, now, max_attempts)
    await uow.commit()
    if result.requeued or result.dead_lettered:
        logger.warning(
            "Reclaimed stale in-flight tasks: %d requeued, %d dead-lettered",
            result.requeued,
            result.dead_lettered,
        )
    return result
