"""
AuditEvent model - append-only, field-level change history for a driver.
One row per changed field per update call; rows are never edited.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base

ACTION_CREATED = "CREATED"
ACTION_UPDATED = "UPDATED"
ACTION_STATUS_CHANGED = "STATUS_CHANGED"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    driver_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("drivers.id", ondelete="CASCADE"), nullable=False
    )
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # CREATED, UPDATED, STATUS_CHANGED
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    new_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_audit_events_driver_timestamp", "driver_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} {self.field} driver={self.driver_id}>"
