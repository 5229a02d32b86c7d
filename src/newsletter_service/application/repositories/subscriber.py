from __future__ import annotations

from typing import Protocol


class SubscriberReader(Protocol):
    async def list_confirmed_emails(self) -> list[str]: ...
