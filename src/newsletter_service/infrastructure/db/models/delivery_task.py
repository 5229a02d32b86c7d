from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from newsletter_service.infrastructure.db.base import Base


class DeliveryTaskModel(Base):
    __tablename__ = "issue_delivery_queue"

    newsletter_issue_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("newsletter_issues.id", ondelete="CASCADE"),
        primary_key=True,
    )
    subscriber_email: Mapped[str] = mapped_column(String(320), primary_key=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    next_attempt_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    claimed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
        onupdate=text("now()"),
    )

    __table_args__ = (
        CheckConstraint("attempt_count >= 0", name="ck_delivery_attempt_count"),
        CheckConstraint(
            "state IN ('pending', 'in_flight', 'done', 'dead_lettered')",
            name="ck_delivery_state",
        ),
        Index("ix_delivery_claimable", "state", "next_attempt_at"),
    )
