from __future__ import annotations

from dataclasses import dataclass

from newsletter_service.domain.value_objects.ids import IssueId


@dataclass(frozen=True, slots=True)
class DeliveryStats:
    issue_id: IssueId
    pending: int = 0
    in_flight: int = 0
    done: int = 0
    dead_lettered: int = 0


@dataclass(frozen=True, slots=True)
class ReclaimResult:
    requeued: int
    dead_lettered: int
