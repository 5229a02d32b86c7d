from __future__ import annotations

from typing import Protocol


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, text: str, html: str) -> None:
        """Deliver one message.

        Raises TransientSendFailure when a retry may succeed and
        PermanentSendFailure when it never will.
        """
        ...
