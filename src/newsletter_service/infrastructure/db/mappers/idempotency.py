from __future__ import annotations

from typing import Any

from newsletter_service.application.exceptions import StorageError
from newsletter_service.domain.entities.idempotency import (
    Completed,
    IdempotencyRecord,
    InProgress,
    SavedResponse,
)
from newsletter_service.domain.value_objects.enums import IdempotencyState
from newsletter_service.infrastructure.db.models.idempotency import IdempotencyModel


def model_to_record(model: IdempotencyModel) -> IdempotencyRecord:
    if model.state == IdempotencyState.IN_PROGRESS:
        return InProgress(created_at=model.created_at)
    if (
        model.response_status_code is None
        or model.response_headers is None
        or model.response_body is None
    ):
        raise StorageError(
            f"Completed idempotency record {model.idempotency_key!r} has no saved response"
        )
    return Completed(
        response=SavedResponse(
            status_code=model.response_status_code,
            headers=tuple((name, value) for name, value in model.response_headers),
            body=bytes(model.response_body),
        ),
        created_at=model.created_at,
    )


def response_to_columns(response: SavedResponse) -> dict[str, Any]:
    return {
        "state": IdempotencyState.COMPLETED.value,
        "response_status_code": response.status_code,
        "response_headers": [[name, value] for name, value in response.headers],
        "response_body": response.body,
    }
