from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    """The idempotency key is held by a request that has not finished yet."""


class ValidationError(AppError):
    pass


class StorageError(AppError):
    """A transaction could not be completed; nothing from it was persisted."""


class SendFailure(AppError):
    pass


class TransientSendFailure(SendFailure):
    """Delivery may succeed if retried later (timeouts, 4xx SMTP replies, outages)."""


class PermanentSendFailure(SendFailure):
    """Delivery will never succeed for this recipient (invalid or refused address)."""
