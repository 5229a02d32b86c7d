from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PublishIssueRequest(BaseModel):
    title: str
    text_content: str
    html_content: str


class IssueResponse(BaseModel):
    id: int
    title: str
    text_content: str
    html_content: str
    created_at: datetime

    model_config = {"from_attributes": True}
