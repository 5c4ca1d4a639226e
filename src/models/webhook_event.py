"""
WebhookEvent model - durable at-least-once delivery queue for provider webhooks.

Every accepted webhook becomes one row keyed by (provider, external_event_id).
Rows move PENDING -> PROCESSING -> PROCESSED, or cycle back to PENDING with a
later available_at until attempts run out and they land in FAILED.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import String, Integer, Text, DateTime, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base

STATUS_PENDING = "PENDING"
STATUS_PROCESSING = "PROCESSING"
STATUS_PROCESSED = "PROCESSED"
STATUS_FAILED = "FAILED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    external_event_id: Mapped[str] = mapped_column(String(255), nullable=False)

    payload: Mapped[Any] = mapped_column(JSONB, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_PENDING, server_default=STATUS_PENDING
    )  # PENDING, PROCESSING, PROCESSED, FAILED
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    # Backoff gate - not claimable before this instant
    available_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "provider", "external_event_id",
            name="uq_webhook_events_provider_external",
        ),
        Index("ix_webhook_events_claim", "provider", "status", "available_at", "created_at"),
        Index("ix_webhook_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<WebhookEvent {self.provider}:{self.external_event_id} ({self.status})>"
