from __future__ import annotations

from typing import Protocol

from newsletter_service.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Turns a bearer token into the caller whose id scopes idempotency keys.

    Implementations raise on any invalid, expired or unsigned token.
    """

    async def verify(self, token: str) -> Principal: ...
