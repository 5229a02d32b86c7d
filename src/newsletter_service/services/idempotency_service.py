"""Replay-safe execution of mutating admin requests.

Each (principal, key) pair runs its action at most once. The in-progress
marker is written in the same transaction as the action's own writes, so an
aborted request leaves no trace and a retry with the same key starts fresh.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

from newsletter_service.application.exceptions import ConflictError, ValidationError
from newsletter_service.application.ports.clock import Clock
from newsletter_service.application.uow import UnitOfWork
from newsletter_service.domain.entities.idempotency import Completed, InProgress, SavedResponse
from newsletter_service.domain.value_objects.ids import PrincipalId

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 50

GuardedAction = Callable[[], Awaitable[SavedResponse]]


def validate_key(key: str | None) -> str:
    if key is None or not key.strip():
        raise ValidationError("Idempotency key cannot be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"Idempotency key must be at most {MAX_KEY_LENGTH} characters")
    return key


async def _replay_or_conflict(
    principal_id: PrincipalId,
    key: str,
    uow: UnitOfWork,
) -> SavedResponse | None:
    record = await uow.idempotency.get(principal_id, key)
    match record:
        case Completed(response=response):
            logger.info("Replaying saved response for idempotency key %s", key)
            return response
        case InProgress():
            raise ConflictError("A request with this idempotency key is still being processed")
        case _:
            return None


async def guard(
    principal_id: PrincipalId,
    key: str,
    action: GuardedAction,
    uow: UnitOfWork,
    clock: Clock,
) -> SavedResponse:
    key = validate_key(key)

    saved = await _replay_or_conflict(principal_id, key, uow)
    if saved is not None:
        return saved

    try:
        started = await uow.idempotency.try_start(principal_id, key, clock.now())
        if not started:
            # Lost the race to a request that has since committed.
            await uow.rollback()
            saved = await _replay_or_conflict(principal_id, key, uow)
            if saved is None:
                raise ConflictError("Idempotency record vanished while resolving a duplicate request")
            return saved

        response = await action()
        await uow.idempotency.complete(principal_id, key, response)
        await uow.commit()
    except Exception:
        await uow.rollback()
        raise

    return response
