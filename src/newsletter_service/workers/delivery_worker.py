"""Delivery worker: claims due delivery tasks and sends each issue by email."""
from __future__ import annotations

import asyncio
import logging
import signal
from datetime import timedelta

from newsletter_service.api.middleware.correlation_id import correlation_id_ctx, new_correlation_id
from newsletter_service.application.exceptions import (
    PermanentSendFailure,
    SendFailure,
    TransientSendFailure,
)
from newsletter_service.application.ports.clock import Clock, SystemClock
from newsletter_service.application.ports.email import EmailSender
from newsletter_service.application.policies.retry import GiveUp, RetryAt, RetryPolicy
from newsletter_service.application.uow import UoWFactory
from newsletter_service.config import settings
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.entities.issue import NewsletterIssue
from newsletter_service.domain.value_objects.email import InvalidEmailError, parse_email
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.log import configure_logging
from newsletter_service.services import delivery_service

logger = logging.getLogger(__name__)


class DeliveryWorker:
    def __init__(
        self,
        uow_factory: UoWFactory,
        sender: EmailSender,
        *,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        batch_size: int = 20,
        poll_interval: float = 10.0,
        send_timeout: float = 10.0,
        inflight_timeout: float = 600.0,
        retain_done: bool = False,
    ) -> None:
        self._uow_factory = uow_factory
        self._sender = sender
        self._clock = clock or SystemClock()
        self._retry_policy = retry_policy or RetryPolicy()
        self._batch_size = batch_size
        self._poll_interval = poll_interval
        self._send_timeout = send_timeout
        self._inflight_timeout = timedelta(seconds=inflight_timeout)
        self._retain_done = retain_done

        if batch_size * send_timeout >= inflight_timeout:
            raise ValueError("batch_size * send_timeout must stay below inflight_timeout")

    async def run(self, stop: asyncio.Event) -> None:
        """Drain the queue until ``stop`` is set.

        A batch that has been claimed is always finished; the stop request is
        honoured only between batches.
        """
        logger.info(
            "Delivery worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
            self._poll_interval,
            self._batch_size,
            self._retry_policy.max_attempts,
        )
        while not stop.is_set():
            try:
                claimed = await self.run_once()
            except Exception:
                logger.exception("Delivery worker loop error")
                claimed = 0
            if not claimed:
                await self._idle(stop)
        logger.info("Delivery worker stopped")

    async def run_once(self) -> int:
        """Sweep stale claims, claim one batch and process it. Returns the batch size."""
        async with self._uow_factory() as uow:
            await delivery_service.reclaim_stale(
                uow, self._clock, self._inflight_timeout, self._retry_policy.max_attempts,
            )

        batch = await self._claim()
        if not batch:
            return 0

        token = correlation_id_ctx.set(new_correlation_id())
        try:
            issues: dict[IssueId, NewsletterIssue | None] = {}
            for index, task in enumerate(batch):
                if self._claim_expiring(task):
                    await self._release(batch[index:])
                    break
                await self._process(task, issues)
        finally:
            correlation_id_ctx.reset(token)
        return len(batch)

    async def _idle(self, stop: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop.wait(), timeout=self._poll_interval)
        except TimeoutError:
            pass

    async def _claim(self) -> list[DeliveryTask]:
        async with self._uow_factory() as uow:
            batch = await uow.deliveries.claim_batch(self._batch_size, self._clock.now())
            await uow.commit()
        if batch:
            logger.debug("Claimed %d delivery tasks", len(batch))
        return batch

    def _claim_expiring(self, task: DeliveryTask) -> bool:
        """True when a send started now could outlive the claim.

        Past that point another worker's stale sweep may already own the task.
        """
        if task.claimed_at is None:
            return False
        deadline = task.claimed_at + self._inflight_timeout
        return self._clock.now() + timedelta(seconds=self._send_timeout) >= deadline

    async def _release(self, tasks: list[DeliveryTask]) -> None:
        try:
            async with self._uow_factory() as uow:
                now = self._clock.now()
                released = 0
                for task in tasks:
                    if await uow.deliveries.release(task, now):
                        released += 1
                await uow.commit()
        except Exception:
            logger.exception("Failed to release %d unsent tasks; the stale sweep will reclaim them", len(tasks))
            return
        logger.warning(
            "Batch ran close to the in-flight timeout; released %d of %d unsent tasks",
            released,
            len(tasks),
        )

    async def _process(
        self,
        task: DeliveryTask,
        issues: dict[IssueId, NewsletterIssue | None],
    ) -> None:
        try:
            try:
                await self._deliver(task, issues)
            except TransientSendFailure as exc:
                await self._on_transient(task, str(exc))
            except PermanentSendFailure as exc:
                await self._on_permanent(task, str(exc))
            else:
                await self._on_success(task)
        except Exception:
            # The task stays in flight; the stale sweep returns it to the queue.
            logger.exception(
                "Failed to record outcome for issue %d -> %s",
                task.issue_id,
                task.subscriber_email,
            )

    async def _deliver(
        self,
        task: DeliveryTask,
        issues: dict[IssueId, NewsletterIssue | None],
    ) -> None:
        if task.issue_id not in issues:
            async with self._uow_factory() as uow:
                issues[task.issue_id] = await uow.issues.get(task.issue_id)
        issue = issues[task.issue_id]
        if issue is None:
            raise PermanentSendFailure(f"Newsletter issue {task.issue_id} does not exist")

        try:
            recipient = parse_email(task.subscriber_email)
        except InvalidEmailError as exc:
            raise PermanentSendFailure(str(exc)) from exc

        try:
            await asyncio.wait_for(
                self._sender.send(recipient, issue.title, issue.text_content, issue.html_content),
                timeout=self._send_timeout,
            )
        except SendFailure:
            raise
        except TimeoutError as exc:
            raise TransientSendFailure(f"Send timed out after {self._send_timeout:.1f}s") from exc
        except Exception as exc:
            raise TransientSendFailure(f"Unclassified send error: {exc!r}") from exc

    async def _on_success(self, task: DeliveryTask) -> None:
        async with self._uow_factory() as uow:
            applied = await uow.deliveries.mark_done(task, self._clock.now(), retain=self._retain_done)
            await uow.commit()
        self._log_outcome(task, applied, "delivered")

    async def _on_transient(self, task: DeliveryTask, error: str) -> None:
        now = self._clock.now()
        decision = self._retry_policy.next(task.attempt_count, now)
        async with self._uow_factory() as uow:
            match decision:
                case RetryAt(at=at):
                    applied = await uow.deliveries.reschedule(task, at, error, now)
                case GiveUp():
                    applied = await uow.deliveries.dead_letter(task, error, now)
            await uow.commit()

        if isinstance(decision, GiveUp):
            self._log_outcome(task, applied, f"dead-lettered after {decision.attempts} attempts ({error})")
        else:
            self._log_outcome(task, applied, f"retry in {decision.delay.total_seconds():.0f}s ({error})")

    async def _on_permanent(self, task: DeliveryTask, error: str) -> None:
        async with self._uow_factory() as uow:
            applied = await uow.deliveries.dead_letter(task, error, self._clock.now())
            await uow.commit()
        self._log_outcome(task, applied, f"dead-lettered ({error})")

    @staticmethod
    def _log_outcome(task: DeliveryTask, applied: bool, outcome: str) -> None:
        if not applied:
            logger.warning(
                "Issue %d -> %s: %s, but the task was reclaimed meanwhile; outcome dropped",
                task.issue_id,
                task.subscriber_email,
                outcome,
            )
            return
        logger.info("Issue %d -> %s: %s", task.issue_id, task.subscriber_email, outcome)


async def run_delivery_worker() -> None:
    from newsletter_service.infrastructure.db.session import engine
    from newsletter_service.infrastructure.db.uow import new_uow
    from newsletter_service.infrastructure.email.factory import build_email_sender

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    worker = DeliveryWorker(
        new_uow,
        build_email_sender(settings),
        retry_policy=RetryPolicy(
            base_delay=settings.DELIVERY_RETRY_BASE_DELAY,
            max_delay=settings.DELIVERY_RETRY_MAX_DELAY,
            max_attempts=settings.DELIVERY_MAX_ATTEMPTS,
        ),
        batch_size=settings.DELIVERY_BATCH_SIZE,
        poll_interval=settings.DELIVERY_POLL_INTERVAL,
        send_timeout=settings.DELIVERY_SEND_TIMEOUT,
        inflight_timeout=settings.DELIVERY_INFLIGHT_TIMEOUT,
        retain_done=settings.DELIVERY_RETAIN_DONE,
    )
    try:
        await worker.run(stop)
    finally:
        await engine.dispose()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_delivery_worker())


if __name__ == "__main__":
    main()
