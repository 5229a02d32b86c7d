"""Idempotency records as a tagged union.

A record is either InProgress (the guarded action is running in some
transaction) or Completed with the full response that action produced.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class SavedResponse:
    status_code: int
    headers: tuple[tuple[str, str], ...]
    body: bytes


@dataclass(frozen=True, slots=True)
class InProgress:
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Completed:
    response: SavedResponse
    created_at: datetime


IdempotencyRecord = InProgress | Completed
