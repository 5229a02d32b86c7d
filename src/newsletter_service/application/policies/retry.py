"""Exponential backoff with a cap and a fixed attempt budget.

``attempt_count`` is the number of attempts made *before* the one that just
failed, i.e. the value stored on the task. With the defaults
(base 1s, cap 300s, 10 attempts):

    attempt_count  0 -> retry in 1s
    attempt_count  3 -> retry in 8s
    attempt_count  8 -> retry in 256s
    attempt_count  9 -> give up (10th attempt failed)
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class RetryAt:
    at: datetime
    delay: timedelta


@dataclass(frozen=True, slots=True)
class GiveUp:
    attempts: int


RetryDecision = RetryAt | GiveUp


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    base_delay: float = 1.0
    max_delay: float = 300.0
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.base_delay <= 0 or self.max_delay < self.base_delay:
            raise ValueError("need 0 < base_delay <= max_delay")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt_count: int) -> timedelta:
        # Exponent is clamped so huge counts do not overflow the float.
        exponent = min(attempt_count, 62)
        return timedelta(seconds=min(self.base_delay * (2 ** exponent), self.max_delay))

    def next(self, attempt_count: int, now: datetime) -> RetryDecision:
        if attempt_count < 0:
            raise ValueError("attempt_count cannot be negative")
        if attempt_count + 1 >= self.max_attempts:
            return GiveUp(attempts=attempt_count + 1)
        delay = self.delay_for(attempt_count)
        return RetryAt(at=now + delay, delay=delay)
