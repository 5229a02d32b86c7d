from __future__ import annotations

from dataclasses import dataclass, field

from newsletter_service.domain.value_objects.enums import PrincipalKind
from newsletter_service.domain.value_objects.ids import PrincipalId


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    kind: PrincipalKind
    subject_id: PrincipalId
    roles: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.kind == PrincipalKind.ADMIN or "admin" in self.roles
