from __future__ import annotations

import pytest

from newsletter_service.application.exceptions import NotFoundError, StorageError, ValidationError
from newsletter_service.domain.value_objects.enums import DeliveryState, SubscriptionStatus
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.services import issue_service
from tests.conftest import T0, FakeUoW

CONFIRMED = ["ann@example.com", "bob@example.com", "cy@example.com"]


@pytest.fixture
def subscribers(db):
    for email in CONFIRMED:
        db.add_subscriber(email)
    db.add_subscriber("pending@example.com", SubscriptionStatus.PENDING_CONFIRMATION)
    return db


@pytest.mark.asyncio
async def test_publish_fans_out_to_confirmed_subscribers_only(subscribers, uow, clock):
    issue = await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)

    tasks = subscribers.tasks_for(issue.id)
    assert sorted(t.subscriber_email for t in tasks) == CONFIRMED
    assert len({t.key for t in tasks}) == len(tasks)
    assert all(t.state == DeliveryState.PENDING for t in tasks)
    assert all(t.attempt_count == 0 and t.next_attempt_at == T0 for t in tasks)
    assert subscribers.issues[issue.id].title == "Hello"
    assert uow._committed is True


@pytest.mark.asyncio
async def test_publish_without_commit_leaves_transaction_open(subscribers, uow, clock):
    issue = await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock, commit=False)

    assert subscribers.issues == {}
    assert subscribers.tasks == {}

    await uow.commit()
    assert len(subscribers.tasks_for(issue.id)) == 3


@pytest.mark.asyncio
async def test_subscribers_confirmed_later_do_not_receive_earlier_issue(subscribers, uow, clock):
    issue = await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)
    subscribers.add_subscriber("late@example.com")

    emails = {t.subscriber_email for t in subscribers.tasks_for(issue.id)}
    assert "late@example.com" not in emails


@pytest.mark.asyncio
async def test_duplicate_subscriber_rows_enqueue_once(db, uow, clock):
    db.add_subscriber("ann@example.com")
    db.add_subscriber("ann@example.com")

    issue = await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)

    assert len(db.tasks_for(issue.id)) == 1


@pytest.mark.asyncio
async def test_publish_with_no_subscribers_creates_issue_only(db, uow, clock):
    issue = await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)

    assert issue.id in db.issues
    assert db.tasks == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("title", "text", "html"),
    [("", "text", "<p/>"), ("Title", "   ", "<p/>"), ("Title", "text", "")],
)
async def test_empty_content_is_rejected_before_any_write(subscribers, uow, clock, title, text, html):
    with pytest.raises(ValidationError):
        await issue_service.publish_issue(title, text, html, uow, clock)

    assert uow.staged_issues == {}
    assert subscribers.issues == {}
    assert subscribers.tasks == {}


@pytest.mark.asyncio
async def test_failed_commit_persists_nothing(subscribers, clock):
    subscribers.fail_commit = True

    async with FakeUoW(subscribers) as uow:
        with pytest.raises(StorageError):
            await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)

    assert subscribers.issues == {}
    assert subscribers.tasks == {}


@pytest.mark.asyncio
async def test_failure_mid_fan_out_persists_nothing(subscribers, clock):
    subscribers.fail_subscriber_read = True

    with pytest.raises(StorageError):
        async with FakeUoW(subscribers) as uow:
            await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)

    assert subscribers.issues == {}
    assert subscribers.tasks == {}


@pytest.mark.asyncio
async def test_delivery_stats_counts_by_state(subscribers, uow, clock):
    issue = await issue_service.publish_issue("Hello", "text", "<p>html</p>", uow, clock)
    subscribers.add_task(issue.id, "gone@example.com", state=DeliveryState.DEAD_LETTERED, attempt_count=10)

    stats = await issue_service.delivery_stats(issue.id, FakeUoW(subscribers))

    assert (stats.pending, stats.in_flight, stats.done, stats.dead_lettered) == (3, 0, 0, 1)


@pytest.mark.asyncio
async def test_delivery_stats_for_unknown_issue(uow):
    with pytest.raises(NotFoundError):
        await issue_service.delivery_stats(IssueId(404), uow)
