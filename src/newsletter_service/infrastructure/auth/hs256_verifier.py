from __future__ import annotations

import jwt

from newsletter_service.application.dto.principal import Principal
from newsletter_service.domain.value_objects.enums import PrincipalKind
from newsletter_service.domain.value_objects.ids import PrincipalId


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            options={"require": ["sub"]},
        )
        kind_raw = payload.get("kind", "user")
        kind = PrincipalKind(kind_raw) if kind_raw in PrincipalKind.__members__.values() else PrincipalKind.USER
        return Principal(
            kind=kind,
            subject_id=PrincipalId(str(payload["sub"])),
            roles=list(payload.get("roles", [])),
        )
