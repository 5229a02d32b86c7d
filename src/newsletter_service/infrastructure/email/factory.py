from __future__ import annotations

from newsletter_service.application.ports.email import EmailSender
from newsletter_service.config import Settings
from newsletter_service.infrastructure.email.log_sender import LoggingEmailSender
from newsletter_service.infrastructure.email.smtp_sender import SmtpEmailSender


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.EMAIL_BACKEND == "log":
        return LoggingEmailSender()
    return SmtpEmailSender(
        sender=settings.EMAIL_SENDER,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        use_tls=settings.SMTP_USE_TLS,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        timeout=settings.SMTP_TIMEOUT,
    )
