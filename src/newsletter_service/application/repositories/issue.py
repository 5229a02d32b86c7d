from __future__ import annotations

from datetime import datetime
from typing import Protocol

from newsletter_service.domain.entities.issue import NewsletterIssue
from newsletter_service.domain.value_objects.ids import IssueId


class IssueRepository(Protocol):
    async def add(
        self,
        title: str,
        text_content: str,
        html_content: str,
        created_at: datetime,
    ) -> NewsletterIssue:
        """Insert an issue; the store assigns the generation-ordered id."""
        ...

    async def get(self, issue_id: IssueId) -> NewsletterIssue | None: ...
