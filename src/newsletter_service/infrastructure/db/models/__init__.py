"""Import all models so Base.metadata knows every table."""
from newsletter_service.infrastructure.db.models.delivery_task import DeliveryTaskModel
from newsletter_service.infrastructure.db.models.idempotency import IdempotencyModel
from newsletter_service.infrastructure.db.models.issue import NewsletterIssueModel
from newsletter_service.infrastructure.db.models.subscriber import SubscriberModel

__all__ = [
    "DeliveryTaskModel",
    "IdempotencyModel",
    "NewsletterIssueModel",
    "SubscriberModel",
]
