"""Shared test fixtures.

``FakeDatabase`` is the committed state shared by every ``FakeUoW``. A unit
of work stages its writes and publishes them on commit, and holds row locks
until commit/rollback, so claim and idempotency races can be exercised
without PostgreSQL.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any, Self

import pytest

from newsletter_service.application.dto.delivery import DeliveryStats, ReclaimResult
from newsletter_service.application.dto.principal import Principal
from newsletter_service.application.exceptions import ConflictError, StorageError
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.entities.idempotency import (
    Completed,
    IdempotencyRecord,
    InProgress,
    SavedResponse,
)
from newsletter_service.domain.entities.issue import NewsletterIssue
from newsletter_service.domain.value_objects.enums import (
    DeliveryState,
    PrincipalKind,
    SubscriptionStatus,
)
from newsletter_service.domain.value_objects.ids import IssueId, PrincipalId

T0 = datetime(2024, 5, 22, 8, 42, tzinfo=timezone.utc)

TaskKey = tuple[IssueId, str]
IdemKey = tuple[PrincipalId, str]


@dataclass
class FixedClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)

    def set(self, when: datetime) -> None:
        self.current = when


@dataclass
class FakeDatabase:
    issues: dict[IssueId, NewsletterIssue] = field(default_factory=dict)
    tasks: dict[TaskKey, DeliveryTask] = field(default_factory=dict)
    idempotency: dict[IdemKey, IdempotencyRecord] = field(default_factory=dict)
    subscribers: list[tuple[str, SubscriptionStatus]] = field(default_factory=list)
    row_locks: dict[Any, FakeUoW] = field(default_factory=dict)
    mutex: threading.Lock = field(default_factory=threading.Lock)
    fail_commit: bool = False
    fail_subscriber_read: bool = False
    commits: int = 0
    _issue_seq: int = 0

    def next_issue_id(self) -> IssueId:
        # Like a database sequence, ids are not returned on rollback.
        self._issue_seq += 1
        return IssueId(self._issue_seq)

    def add_subscriber(self, email: str, status: SubscriptionStatus = SubscriptionStatus.CONFIRMED) -> None:
        self.subscribers.append((email, status))

    def add_issue(self, title: str = "Issue", created_at: datetime = T0) -> NewsletterIssue:
        issue = NewsletterIssue(
            id=self.next_issue_id(),
            title=title,
            text_content=f"{title} text",
            html_content=f"<p>{title}</p>",
            created_at=created_at,
        )
        self.issues[issue.id] = issue
        return issue

    def add_task(self, issue_id: IssueId, email: str, **overrides: Any) -> DeliveryTask:
        values: dict[str, Any] = {
            "attempt_count": 0,
            "next_attempt_at": T0,
            "state": DeliveryState.PENDING,
        }
        values.update(overrides)
        task = DeliveryTask(issue_id=issue_id, subscriber_email=email, **values)
        self.tasks[task.key] = task
        return task

    def tasks_for(self, issue_id: IssueId) -> list[DeliveryTask]:
        return [t for t in self.tasks.values() if t.issue_id == issue_id]


class FakeIssueRepo:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def add(self, title: str, text_content: str, html_content: str, created_at: datetime) -> NewsletterIssue:
        issue = NewsletterIssue(
            id=self._uow.db.next_issue_id(),
            title=title,
            text_content=text_content,
            html_content=html_content,
            created_at=created_at,
        )
        self._uow.staged_issues[issue.id] = issue
        return issue

    async def get(self, issue_id: IssueId) -> NewsletterIssue | None:
        return self._uow.staged_issues.get(issue_id) or self._uow.db.issues.get(issue_id)


class FakeSubscriberReader:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def list_confirmed_emails(self) -> list[str]:
        if self._uow.db.fail_subscriber_read:
            raise StorageError("subscriber read failed")
        return [
            email
            for email, status in self._uow.db.subscribers
            if status == SubscriptionStatus.CONFIRMED
        ]


class FakeDeliveryQueue:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    def _view(self) -> dict[TaskKey, DeliveryTask]:
        view = dict(self._uow.db.tasks)
        for key, task in self._uow.staged_tasks.items():
            if task is None:
                view.pop(key, None)
            else:
                view[key] = task
        return view

    def _stage(self, key: TaskKey, task: DeliveryTask | None) -> None:
        self._uow.staged_tasks[key] = task

    def _owned(self, task: DeliveryTask) -> bool:
        current = self._view().get(task.key)
        return (
            current is not None
            and current.state == DeliveryState.IN_FLIGHT
            and current.attempt_count == task.attempt_count
        )

    async def enqueue(self, issue_id: IssueId, emails: Any, now: datetime) -> int:
        view = self._view()
        created = 0
        for email in emails:
            key = (issue_id, email)
            if key in view:
                continue
            task = DeliveryTask(
                issue_id=issue_id,
                subscriber_email=email,
                attempt_count=0,
                next_attempt_at=now,
                state=DeliveryState.PENDING,
            )
            self._stage(key, task)
            view[key] = task
            created += 1
        return created

    async def claim_batch(self, limit: int, now: datetime) -> list[DeliveryTask]:
        db = self._uow.db
        with db.mutex:
            due = sorted(
                (
                    t for t in self._view().values()
                    if t.state == DeliveryState.PENDING
                    and t.next_attempt_at <= now
                    and db.row_locks.get(t.key, self._uow) is self._uow
                ),
                key=lambda t: t.next_attempt_at,
            )[:limit]
            claimed = []
            for task in due:
                self._uow.lock(task.key)
                in_flight = replace(task, state=DeliveryState.IN_FLIGHT, claimed_at=now)
                self._stage(task.key, in_flight)
                claimed.append(in_flight)
        return claimed

    async def mark_done(self, task: DeliveryTask, now: datetime, *, retain: bool = False) -> bool:
        if not self._owned(task):
            return False
        if retain:
            self._stage(task.key, replace(
                task,
                state=DeliveryState.DONE,
                attempt_count=task.attempt_count + 1,
                claimed_at=None,
                last_error=None,
            ))
        else:
            self._stage(task.key, None)
        return True

    async def reschedule(self, task: DeliveryTask, next_attempt_at: datetime, error: str, now: datetime) -> bool:
        if not self._owned(task):
            return False
        self._stage(task.key, replace(
            task,
            state=DeliveryState.PENDING,
            attempt_count=task.attempt_count + 1,
            next_attempt_at=next_attempt_at,
            claimed_at=None,
            last_error=error,
        ))
        return True

    async def dead_letter(self, task: DeliveryTask, error: str, now: datetime) -> bool:
        if not self._owned(task):
            return False
        self._stage(task.key, replace(
            task,
            state=DeliveryState.DEAD_LETTERED,
            attempt_count=task.attempt_count + 1,
            claimed_at=None,
            last_error=error,
        ))
        return True

    async def release(self, task: DeliveryTask, now: datetime) -> bool:
        if not self._owned(task):
            return False
        self._stage(task.key, replace(
            task, state=DeliveryState.PENDING, next_attempt_at=now, claimed_at=None,
        ))
        return True

    async def reclaim_stale(
self, claimed_before: datetime, now: datetime, max_attempts: int) -> ReclaimResult:
        requeued = dead = 0
        for task in list(self._view().values()):
            if task.state != DeliveryState.IN_FLIGHT or task.claimed_at is None:
                continue
            if task.claimed_at >= claimed_before:
                continue
            attempts = task.attempt_count + 1
            if attempts >= max_attempts:
                self._stage(task.key, replace(
                    task, state=DeliveryState.DEAD_LETTERED, attempt_count=attempts, claimed_at=None,
                ))
                dead += 1
            else:
                self._stage(task.key, replace(
                    task,
                    state=DeliveryState.PENDING,
                    attempt_count=attempts,
                    next_attempt_at=now,
                    claimed_at=None,
                ))
                requeued += 1
        return ReclaimResult(requeued=requeued, dead_lettered=dead)

    async def list_dead_lettered(self, limit: int = 100) -> list[DeliveryTask]:
        dead = [t for t in self._view().values() if t.state == DeliveryState.DEAD_LETTERED]
        return dead[:limit]

    async def requeue_dead_lettered(self, now: datetime, issue_id: IssueId | None = None) -> int:
        count = 0
        for task in list(self._view().values()):
            if task.state != DeliveryState.DEAD_LETTERED:
                continue
            if issue_id is not None and task.issue_id != issue_id:
                continue
            self._stage(task.key, replace(
                task, state=DeliveryState.PENDING, attempt_count=0, next_attempt_at=now,
            ))
            count += 1
        return count

    async def stats(self, issue_id: IssueId) -> DeliveryStats:
        counts = {state: 0 for state in DeliveryState}
        for task in self._view().values():
            if task.issue_id == issue_id:
                counts[task.state] += 1
        return DeliveryStats(
            issue_id=issue_id,
            pending=counts[DeliveryState.PENDING],
            in_flight=counts[DeliveryState.IN_FLIGHT],
            done=counts[DeliveryState.DONE],
            dead_lettered=counts[DeliveryState.DEAD_LETTERED],
        )


class FakeIdempotencyRepo:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def get(self, principal_id: PrincipalId, key: str) -> IdempotencyRecord | None:
        ident = (principal_id, key)
        return self._uow.staged_idempotency.get(ident) or self._uow.db.idempotency.get(ident)

    async def try_start(self, principal_id: PrincipalId, key: str, now: datetime) -> bool:
        db = self._uow.db
        ident = (principal_id, key)
        with db.mutex:
            if ident in db.idempotency:
                return False
            holder = db.row_locks.get(("idempotency", ident))
            if holder is not None and holder is not self._uow:
                raise ConflictError("A request with this idempotency key is still being processed")
            self._uow.lock(("idempotency", ident))
            self._uow.staged_idempotency[ident] = InProgress(created_at=now)
        return True

    async def complete(self, principal_id: PrincipalId, key: str, response: SavedResponse) -> None:
        ident = (principal_id, key)
        current = self._uow.staged_idempotency.get(ident)
        if not isinstance(current, InProgress):
            raise StorageError(f"Idempotency key {key!r} is not in progress for this principal")
        self._uow.staged_idempotency[ident] = Completed(response=response, created_at=current.created_at)


class FakeUoW:
    """In-memory UoW for unit tests."""

    def __init__(self, db: FakeDatabase | None = None) -> None:
        self.db = db if db is not None else FakeDatabase()
        self.staged_issues: dict[IssueId, NewsletterIssue] = {}
        self.staged_tasks: dict[TaskKey, DeliveryTask | None] = {}
        self.staged_idempotency: dict[IdemKey, IdempotencyRecord] = {}
        self._held_locks: set[Any] = set()
        self._committed = False
        self.rollbacks = 0
        self.issues = FakeIssueRepo(self)
        self.subscribers = FakeSubscriberReader(self)
        self.deliveries = FakeDeliveryQueue(self)
        self.idempotency = FakeIdempotencyRepo(self)

    def lock(self, key: Any) -> None:
        self.db.row_locks[key] = self
        self._held_locks.add(key)

    def _release(self) -> None:
        for key in self._held_locks:
            if self.db.row_locks.get(key) is self:
                del self.db.row_locks[key]
        self._held_locks.clear()
        self.staged_issues.clear()
        self.staged_tasks.clear()
        self.staged_idempotency.clear()

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        if self.db.fail_commit:
            self._release()
            raise StorageError("commit failed")
        self.db.issues.update(self.staged_issues)
        for key, task in self.staged_tasks.items():
            if task is None:
                self.db.tasks.pop(key, None)
            else:
                self.db.tasks[key] = task
        self.db.idempotency.update(self.staged_idempotency)
        self.db.commits += 1
        self._committed = True
        self._release()

    async def rollback(self) -> None:
        self.rollbacks += 1
        self._release()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.rollback()


@dataclass
class FakeEmailSender:
    """Scripted transport: each recipient fails with the queued exceptions, then succeeds."""

    script: dict[str, list[BaseException]] = field(default_factory=dict)
    always: dict[str, BaseException] = field(default_factory=dict)
    sent: list[tuple[str, str]] = field(default_factory=list)
    attempts: list[str] = field(default_factory=list)

    async def send(self, to: str, subject: str, text: str, html: str) -> None:
        self.attempts.append(to)
        if to in self.always:
            raise self.always[to]
        queued = self.script.get(to)
        if queued:
            raise queued.pop(0)
        self.sent.append((to, subject))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def uow(db: FakeDatabase) -> FakeUoW:
    return FakeUoW(db)


@pytest.fixture
def sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(kind=PrincipalKind.ADMIN, subject_id=PrincipalId("7a1f6c1e-0d4b-4c57-9f0e-4f5d3e2b1a90"), roles=["admin"])


@pytest.fixture
def user_principal() -> Principal:
    return Principal(kind=PrincipalKind.USER, subject_id=PrincipalId("b3c0f1d2-5e6a-4b7c-8d9e-0f1a2b3c4d5e"), roles=[])
