from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from newsletter_service.domain.value_objects.ids import IssueId


@dataclass(frozen=True, slots=True)
class NewsletterIssue:
    id: IssueId
    title: str
    text_content: str
    html_content: str
    created_at: datetime
