from __future__ import annotations

from datetime import datetime
from typing import Protocol

from newsletter_service.domain.entities.idempotency import IdempotencyRecord, SavedResponse
from newsletter_service.domain.value_objects.ids import PrincipalId


class IdempotencyRepository(Protocol):
    async def get(self, principal_id: PrincipalId, key: str) -> IdempotencyRecord | None: ...

    async def try_start(self, principal_id: PrincipalId, key: str, now: datetime) -> bool:
        """Insert an in-progress marker. False if a committed record already exists.

        Raises ConflictError if another transaction holds the same key and
        does not finish within the configured lock timeout.
        """
        ...

    async def complete(self, principal_id: PrincipalId, key: str, response: SavedResponse) -> None: ...
