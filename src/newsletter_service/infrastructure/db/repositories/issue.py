from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.domain.entities.issue import NewsletterIssue
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.infrastructure.db.errors import storage_errors
from newsletter_service.infrastructure.db.mappers import issue as mapper
from newsletter_service.infrastructure.db.models.issue import NewsletterIssueModel


class IssueRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @storage_errors
    async def add(
        self,
        title: str,
        text_content: str,
        html_content: str,
        created_at: datetime,
    ) -> NewsletterIssue:
        model = NewsletterIssueModel(
            title=title,
            text_content=text_content,
            html_content=html_content,
            created_at=created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    @storage_errors
    async def get(self, issue_id: IssueId) -> NewsletterIssue | None:
        model = await self._session.get(NewsletterIssueModel, issue_id)
        return mapper.model_to_entity(model) if model else None
