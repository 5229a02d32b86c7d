"""Entrypoint for the admin API: python -m newsletter_service"""
from __future__ import annotations

import uvicorn

from newsletter_service.config import settings
from newsletter_service.log import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "newsletter_service.app:create_app",
        factory=True,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
