"""SMTP transport.

Failures are split the way SMTP reply codes split them: 5xx replies and
refused recipients are permanent, everything else (4xx replies, connection
trouble, timeouts) is worth retrying.
"""
from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from newsletter_service.application.exceptions import (
    PermanentSendFailure,
    SendFailure,
    TransientSendFailure,
)

logger = logging.getLogger(__name__)


def classify_smtp_error(exc: aiosmtplib.SMTPException) -> SendFailure:
    if isinstance(exc, aiosmtplib.SMTPRecipientsRefused):
        return PermanentSendFailure(f"Recipient refused: {exc}")
    if isinstance(exc, (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected)):
        return TransientSendFailure(f"SMTP connection problem: {exc}")
    if isinstance(exc, aiosmtplib.SMTPTimeoutError):
        return TransientSendFailure(f"SMTP timeout: {exc}")
    if isinstance(exc, (aiosmtplib.SMTPAuthenticationError, aiosmtplib.SMTPSenderRefused)):
        # Our own account or sender address, not the recipient: retry once an operator fixes it.
        return TransientSendFailure(f"SMTP rejected our credentials or sender: {exc}")
    if isinstance(exc, aiosmtplib.SMTPResponseException) and 500 <= exc.code < 600:
        return PermanentSendFailure(f"SMTP {exc.code}: {exc.message}")
    return TransientSendFailure(f"SMTP error: {exc}")


class SmtpEmailSender:
    def __init__(
        self,
        *,
        sender: str,
        hostname: str,
        port: int,
        use_tls: bool = True,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._sender = sender
        self._hostname = hostname
        self._port = port
        self._use_tls = use_tls
        self._username = username
        self._password = password
        self._timeout = timeout

    def _build_message(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text, charset="utf-8")
        msg.add_alternative(html, subtype="html", charset="utf-8")
        return msg

    async def send(self, to: str, subject: str, text: str, html: str) -> None:
        msg = self._build_message(to, subject, text, html)
        try:
            errors, response = await aiosmtplib.send(
                msg,
                hostname=self._hostname,
                port=self._port,
                start_tls=self._use_tls,
                username=self._username,
                password=self._password,
                timeout=self._timeout,
            )
        except aiosmtplib.SMTPException as exc:
            raise classify_smtp_error(exc) from exc
        except OSError as exc:
            raise TransientSendFailure(f"SMTP connection problem: {exc}") from exc

        if errors:
            details = "; ".join(f"{addr}: {err}" for addr, err in errors.items())
            raise PermanentSendFailure(f"Recipient refused: {details}")
        logger.debug("SMTP accepted message to %s: %s", to, response)
