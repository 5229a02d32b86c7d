from __future__ import annotations

from newsletter_service.domain.entities.issue import NewsletterIssue
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.infrastructure.db.models.issue import NewsletterIssueModel


def model_to_entity(model: NewsletterIssueModel) -> NewsletterIssue:
    return NewsletterIssue(
        id=IssueId(model.id),
        title=model.title,
        text_content=model.text_content,
        html_content=model.html_content,
        created_at=model.created_at,
    )
