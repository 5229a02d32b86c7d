from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, Integer, LargeBinary, String, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from newsletter_service.infrastructure.db.base import Base


class IdempotencyModel(Base):
    __tablename__ = "idempotency"

    principal_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="in_progress",
        server_default=text("'in_progress'"),
    )
    response_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_headers: Mapped[list[Any] | None] = mapped_column(JSONB, nullable=True)
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    __table_args__ = (
        CheckConstraint(
            "(state = 'in_progress' AND response_status_code IS NULL"
            " AND response_headers IS NULL AND response_body IS NULL)"
            " OR (state = 'completed' AND response_status_code IS NOT NULL"
            " AND response_headers IS NOT NULL AND response_body IS NOT NULL)",
            name="ck_idempotency_response_matches_state",
        ),
    )
