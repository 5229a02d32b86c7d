from __future__ import annotations

from typing import Literal, Self

from pydantic import ConfigDict, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_APPLICATION_NAME: str = "newsletter-service"

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    DELIVERY_POLL_INTERVAL: float = 10.0
    DELIVERY_BATCH_SIZE: int = 20
    DELIVERY_MAX_ATTEMPTS: int = 10
    DELIVERY_RETRY_BASE_DELAY: float = 1.0
    DELIVERY_RETRY_MAX_DELAY: float = 300.0
    DELIVERY_SEND_TIMEOUT: float = 10.0
    # In-flight tasks older than this are presumed abandoned by a crashed worker.
    DELIVERY_INFLIGHT_TIMEOUT: float = 600.0
    DELIVERY_RETAIN_DONE: bool = False

    IDEMPOTENCY_LOCK_TIMEOUT_MS: int = 2000

    EMAIL_BACKEND: Literal["smtp", "log"] = "smtp"
    EMAIL_SENDER: str = "newsletter@example.com"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USE_TLS: bool = True
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_TIMEOUT: float = 10.0

    @model_validator(mode="after")
    def _check_delivery_timing(self) -> Self:
        # A full batch of timed-out sends must finish before its claims go stale.
        if self.DELIVERY_BATCH_SIZE * self.DELIVERY_SEND_TIMEOUT >= self.DELIVERY_INFLIGHT_TIMEOUT:
            raise ValueError(
                "DELIVERY_BATCH_SIZE * DELIVERY_SEND_TIMEOUT must be below DELIVERY_INFLIGHT_TIMEOUT"
            )
        return self

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
