from __future__ import annotations

from fastapi import APIRouter, Query

from newsletter_service.api.deps import ClockDep, CurrentAdmin, UoWDep
from newsletter_service.api.v1.schemas.delivery import DeadLetterResponse, RequeueResponse
from newsletter_service.domain.value_objects.ids import IssueId
from newsletter_service.services import delivery_service

router = APIRouter(prefix="/api/v1/admin/deliveries", tags=["admin"])


@router.get("/dead-letters", response_model=list[DeadLetterResponse])
async def list_dead_letters(
    admin: CurrentAdmin,
    uow: UoWDep,
    limit: int = Query(100, ge=1, le=1000),
) -> list[DeadLetterResponse]:
    tasks = await delivery_service.list_dead_letters(uow, limit)
    return [DeadLetterResponse.model_validate(t, from_attributes=True) for t in tasks]


@router.post("/dead-letters/requeue", response_model=RequeueResponse)
async def requeue_dead_letters(
    admin: CurrentAdmin,
    uow: UoWDep,
    clock: ClockDep,
    issue_id: int | None = Query(None),
) -> RequeueResponse:
    requested_at = clock.now()
    count = await delivery_service.requeue_dead_letters(
        uow, clock, IssueId(issue_id) if issue_id is not None else None,
    )
    return RequeueResponse(requeued=count, requested_at=requested_at)
