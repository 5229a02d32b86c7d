from __future__ import annotations

import logging

from newsletter_service.application.dto.delivery import DeliveryStats
from newsletter_service.application.exceptions import NotFoundError, ValidationError
from newsletter_service.application.ports.clock import Clock
from newsletter_service.application.uow import UnitOfWork
from newsletter_service.domain.entities.issue import NewsletterIssue
from newsletter_service.domain.value_objects.ids import IssueId

logger = logging.getLogger(__name__)


def _validate_content(title: str, text_content: str, html_content: str) -> None:
    missing = [
        name
        for name, value in (
            ("title", title),
            ("text_content", text_content),
            ("html_content", html_content),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ValidationError(f"Issue fields must not be empty: {', '.join(missing)}")


async def publish_issue(
    title: str,
    text_content: str,
    html_content: str,
    uow: UnitOfWork,
    clock: Clock,
    *,
    commit: bool = True,
) -> NewsletterIssue:
    """Persist an issue together with one pending delivery task per confirmed subscriber.

    The issue row, the subscriber read and the fan-out share the caller's
    transaction. With ``commit=False`` the caller owns the commit, which is
    how the idempotency guard folds its own marker into the same atomic write.
    """
    _validate_content(title, text_content, html_content)

    now = clock.now()
    issue = await uow.issues.add(title, text_content, html_content, now)

    # Distinct while keeping store order; the queue key is (issue, email).
    emails = list(dict.fromkeys(await uow.subscribers.list_confirmed_emails()))
    enqueued = await uow.deliveries.enqueue(issue.id, emails, now)

    if commit:
        await uow.commit()

    logger.info("Issue %d staged with %d delivery tasks", issue.id, enqueued)
    return issue


async def delivery_stats(issue_id: IssueId, uow: UnitOfWork) -> DeliveryStats:
    issue = await uow.issues.get(issue_id)
    if issue is None:
        raise NotFoundError("Newsletter issue not found")
    return await uow.deliveries.stats(issue_id)
