from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LoggingEmailSender:
    """Development transport: logs the message instead of sending it."""

    async def send(self, to: str, subject: str, text: str, html: str) -> None:
        logger.info("Would send %r to %s (%d text chars, %d html chars)", subject, to, len(text), len(html))
