from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from newsletter_service.domain.value_objects.enums import DeliveryState
from newsletter_service.domain.value_objects.ids import IssueId


@dataclass(frozen=True, slots=True)
class DeliveryTask:
    """One (issue, subscriber) unit of delivery work."""

    issue_id: IssueId
    subscriber_email: str
    attempt_count: int
    next_attempt_at: datetime
    state: DeliveryState
    claimed_at: datetime | None = None
    last_error: str | None = None

    @property
    def key(self) -> tuple[IssueId, str]:
        return self.issue_id, self.subscriber_email
