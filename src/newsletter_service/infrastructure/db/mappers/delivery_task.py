from __future__ import annotations

from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.value_objects.enums import DeliveryState
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.infrastructure.db.models.delivery_task import DeliveryTaskModel


def model_to_entity(model: DeliveryTaskModel) -> DeliveryTask:
    return DeliveryTask(
        issue_id=IssueId(model.newsletter_issue_id),
        subscriber_email=model.subscriber_email,
        attempt_count=model.attempt_count,
        next_attempt_at=model.next_attempt_at,
        state=DeliveryState(model.state),
        claimed_at=model.claimed_at,
        last_error=model.last_error,
    )
