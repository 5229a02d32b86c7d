from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Header, Response

from newsletter_service.api.deps import ClockDep, CurrentAdmin, UoWDep
from newsletter_service.api.v1.schemas.delivery import DeliveryStatsResponse
from newsletter_service.api.v1.schemas.newsletter import IssueResponse, PublishIssueRequest
from newsletter_service.domain.entities.idempotency import SavedResponse
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.services import idempotency_service, issue_service

router = APIRouter(prefix="/api/v1/admin/newsletters", tags=["admin"])


@router.post("", status_code=201, response_model=IssueResponse)
async def publish_newsletter(
    body: PublishIssueRequest,
    admin: CurrentAdmin,
    uow: UoWDep,
    clock: ClockDep,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> Response:
    """Publish an issue. Resubmitting with the same key replays the first response."""

    async def _publish() -> SavedResponse:
        issue = await issue_service.publish_issue(
            body.title,
            body.text_content,
            body.html_content,
            uow,
            clock,
            commit=False,
        )
        payload = IssueResponse.model_validate(issue, from_attributes=True)
        return SavedResponse(
            status_code=201,
            headers=(("content-type", "application/json"),),
            body=payload.model_dump_json().encode(),
        )

    saved = await idempotency_service.guard(
        admin.subject_id, idempotency_service.validate_key(idempotency_key), _publish, uow, clock,
    )
    return Response(
        content=saved.body,
        status_code=saved.status_code,
        headers=dict(saved.headers),
    )


@router.get("/{issue_id}/deliveries", response_model=DeliveryStatsResponse)
async def get_delivery_stats(
    issue_id: int,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> DeliveryStatsResponse:
    stats = await issue_service.delivery_stats(IssueId(issue_id), uow)
    return DeliveryStatsResponse.model_validate(stats, from_attributes=True)
