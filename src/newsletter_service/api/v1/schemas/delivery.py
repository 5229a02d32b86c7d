from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class DeliveryStatsResponse(BaseModel):
    issue_id: int
    pending: int
    in_flight: int
    done: int
    dead_lettered: int

    model_config = {"from_attributes": True}


class DeadLetterResponse(BaseModel):
    issue_id: int
    subscriber_email: str
    attempt_count: int
    last_error: str | None

    model_config = {"from_attributes": True}


class RequeueResponse(BaseModel):
    requeued: int
    requested_at: datetime
