"""Driver onboarding schema: drivers, audit_events and the webhook_events queue

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

DRIVER_TEXT_COLUMNS = (
    ("name", 255),
    ("first_name", 120),
    ("last_name", 120),
    ("email", 255),
    ("phone", 40),
    ("applied_at", 40),
    ("date_of_birth", 40),
    ("national_insurance_number", 40),
    ("right_to_work_check_code", 60),
    ("induction_date", 40),
    ("interview_date", 40),
    ("id_document_type", 60),
    ("id_document_number", 60),
    ("id_check_completed_at", 40),
    ("drivers_license_number", 60),
    ("drivers_license_expiry_date", 40),
    ("address_line_1", 255),
    ("address_line_2", 255),
    ("city", 120),
    ("postcode", 20),
    ("emergency_contact_name", 255),
    ("emergency_contact_phone", 40),
    ("emergency_contact_relationship", 120),
    ("vehicle_type", 60),
    ("preferred_days_per_week", 20),
    ("preferred_start_date", 40),
    ("details_confirmed_by_driver", 10),
)


def upgrade() -> None:
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(64), primary_key=True),
        *[
            sa.Column(name, sa.String(length), nullable=False, server_default="")
            for name, length in DRIVER_TEXT_COLUMNS
        ],
        sa.Column("status", sa.String(40), nullable=False, server_default="ADDITIONAL_DETAILS_SENT"),
        sa.Column("id_check_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_drivers_email", "drivers", ["email"])
    op.create_index("ix_drivers_status", "drivers", ["status"])

    # Field-level change history, append only
    op.create_table(
        "audit_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "driver_id", sa.String(64),
            sa.ForeignKey("drivers.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("field", sa.String(64), nullable=False),
        sa.Column("old_value", sa.Text, nullable=False, server_default=""),
        sa.Column("new_value", sa.Text, nullable=False, server_default=""),
        sa.Column("note", sa.Text, nullable=False, server_default=""),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_audit_events_driver_timestamp", "audit_events", ["driver_id", "timestamp"]
    )

    # Durable webhook queue, deduplicated per provider
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("external_event_id", sa.String(255), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "provider", "external_event_id", name="uq_webhook_events_provider_external"
        ),
    )
    op.create_index(
        "ix_webhook_events_claim",
        "webhook_events",
        ["provider", "status", "available_at", "created_at"],
    )
    op.create_index("ix_webhook_events_created_at", "webhook_events", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_webhook_events_created_at", table_name="webhook_events")
    op.drop_index("ix_webhook_events_claim", table_name="webhook_events")
    op.drop_table("webhook_events")

    op.drop_index("ix_audit_events_driver_timestamp", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("ix_drivers_status", table_name="drivers")
    op.drop_index("ix_drivers_email", table_name="drivers")
    op.drop_table("drivers")
