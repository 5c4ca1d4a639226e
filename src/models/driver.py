"""
Driver model - one onboarding application.

Ids are assigned upstream (Monday.com item ids) so they are plain strings.
Every onboarding attribute is an independently editable string, apart from
the id_check_completed flag. Empty string means "not provided".
"""
from datetime import datetime, timezone
from sqlalchemy import String, Text, Boolean, DateTime, Index, false
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base


def _text_field(length: int = 255) -> Mapped[str]:
    return mapped_column(String(length), nullable=False, default="", server_default="")


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Identity / contact
    name: Mapped[str] = _text_field()
    first_name: Mapped[str] = _text_field(120)
    last_name: Mapped[str] = _text_field(120)
    email: Mapped[str] = _text_field()
    phone: Mapped[str] = _text_field(40)

    # Pipeline
    status: Mapped[str] = mapped_column(
        String(40), nullable=False, default="ADDITIONAL_DETAILS_SENT"
    )
    applied_at: Mapped[str] = _text_field(40)

    # Compliance
    date_of_birth: Mapped[str] = _text_field(40)
    national_insurance_number: Mapped[str] = _text_field(40)
    right_to_work_check_code: Mapped[str] = _text_field(60)
    induction_date: Mapped[str] = _text_field(40)
    interview_date: Mapped[str] = _text_field(40)
    id_document_type: Mapped[str] = _text_field(60)
    id_document_number: Mapped[str] = _text_field(60)
    id_check_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    id_check_completed_at: Mapped[str] = _text_field(40)
    drivers_license_number: Mapped[str] = _text_field(60)
    drivers_license_expiry_date: Mapped[str] = _text_field(40)

    # Address
    address_line_1: Mapped[str] = _text_field()
    address_line_2: Mapped[str] = _text_field()
    city: Mapped[str] = _text_field(120)
    postcode: Mapped[str] = _text_field(20)

    # Emergency contact
    emergency_contact_name: Mapped[str] = _text_field()
    emergency_contact_phone: Mapped[str] = _text_field(40)
    emergency_contact_relationship: Mapped[str] = _text_field(120)

    # Preferences
    vehicle_type: Mapped[str] = _text_field(60)
    preferred_days_per_week: Mapped[str] = _text_field(20)
    preferred_start_date: Mapped[str] = _text_field(40)
    details_confirmed_by_driver: Mapped[str] = _text_field(10)  # "yes" / "no" / ""

    notes: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_drivers_email", "email"),
        Index("ix_drivers_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Driver {self.id} {self.name!r} ({self.status})>"
