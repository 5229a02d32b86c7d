"""Translate SQLAlchemy failures into the application's StorageError."""
from __future__ import annotations

import functools
from typing import Awaitable, Callable, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from newsletter_service.application.exceptions import StorageError

P = ParamSpec("P")
R = TypeVar("R")


def storage_errors(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as exc:
            raise StorageError(f"{func.__qualname__} failed: {exc.__class__.__name__}") from exc

    return wrapper
