"""
Driver store - reads and whole-record merge updates of drivers, with audit trail.

Every update diffs the tracked fields of the stored row against the incoming
record (as strings) and appends one AuditEvent per changed field. Unchanged
fields produce nothing, so re-applying the same record is audit-silent.

Status values go through LEGACY_STATUS_TRANSLATIONS on read, so rows written
by the old PENDING/APPROVED/REJECTED (1/2/3) status model come back as
current pipeline statuses.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.audit_event import (
    ACTION_CREATED,
    ACTION_STATUS_CHANGED,
    ACTION_UPDATED,
    AuditEvent,
)
from src.models.driver import Driver
from src.schemas.drivers import (
    DEFAULT_DRIVER_STATUS,
    DRIVER_STATUSES,
    AuditEventRecord,
    DriverRecord,
)

logger = logging.getLogger(__name__)

# Order matters: audit rows are written in this order
TRACKED_FIELDS = (
    "name",
    "first_name",
    "last_name",
    "email",
    "phone",
    "status",
    "applied_at",
    "date_of_birth",
    "national_insurance_number",
    "right_to_work_check_code",
    "induction_date",
    "interview_date",
    "id_document_type",
    "id_document_number",
    "id_check_completed",
    "id_check_completed_at",
    "drivers_license_number",
    "drivers_license_expiry_date",
    "address_line_1",
    "address_line_2",
    "city",
    "postcode",
    "emergency_contact_name",
    "emergency_contact_phone",
    "emergency_contact_relationship",
    "vehicle_type",
    "preferred_days_per_week",
    "preferred_start_date",
    "details_confirmed_by_driver",
    "notes",
)

# Stored status value -> current status. Covers the numeric codes and names
# of the previous three-state model; anything unrecognised reads as the
# first pipeline stage.
LEGACY_STATUS_TRANSLATIONS = {
    "1": "ADDITIONAL_DETAILS_SENT",
    "2": "AWAITING_INDUCTION",
    "3": "REJECTED",
    "PENDING": "ADDITIONAL_DETAILS_SENT",
    "APPROVED": "AWAITING_INDUCTION",
}


def translate_status(raw: Any) -> str:
    """Map a stored status (current, legacy or garbage) to a current status."""
    value = str(raw if raw is not None else "").strip().upper()
    if value in DRIVER_STATUSES:
        return value
    return LEGACY_STATUS_TRANSLATIONS.get(value, DEFAULT_DRIVER_STATUS)


def stringify(value: Any) -> str:
    """Audit representation of a field value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _validate_status(status: str) -> str:
    if status not in DRIVER_STATUSES:
        raise ValueError(f"Unknown driver status: {status}")
    return status


def _record_from_row(driver: Driver, audit_rows: list[AuditEvent]) -> DriverRecord:
    data = {field: getattr(driver, field) for field in TRACKED_FIELDS}
    data["status"] = translate_status(driver.status)
    return DriverRecord(
        id=driver.id,
        created_at=driver.created_at,
        updated_at=driver.updated_at,
        audit_trail=[AuditEventRecord.model_validate(row) for row in audit_rows],
        **data,
    )


def diff_driver(current: Driver, incoming: DriverRecord, actor: str) -> list[AuditEvent]:
    """One AuditEvent per tracked field whose string value changes."""
    events = []
    now = datetime.now(timezone.utc)
    for field in TRACKED_FIELDS:
        if field == "status":
            old_value = translate_status(current.status)
        else:
            old_value = stringify(getattr(current, field))
        new_value = stringify(getattr(incoming, field))
        if old_value == new_value:
            continue
        if field == "status":
            action = ACTION_STATUS_CHANGED
            note = f"Status changed from {old_value} to {new_value}"
        else:
            action = ACTION_UPDATED
            note = f"{field} updated"
        events.append(
            AuditEvent(
                driver_id=current.id,
                actor=actor,
                action=action,
                field=field,
                old_value=old_value,
                new_value=new_value,
                note=note,
                timestamp=now,
            )
        )
    return events


class DriverStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _load_audit(self, session: AsyncSession, driver_id: str) -> list[AuditEvent]:
        result = await session.execute(
            select(AuditEvent)
            .where(AuditEvent.driver_id == driver_id)
            .order_by(AuditEvent.timestamp.desc())
        )
        return list(result.scalars().all())

    async def get_driver(self, driver_id: str) -> Optional[DriverRecord]:
        if not driver_id:
            return None
        async with self._session_factory() as session:
            driver = await session.get(Driver, driver_id)
            if driver is None:
                return None
            audit_rows = await self._load_audit(session, driver.id)
            return _record_from_row(driver, audit_rows)

    async def find_driver_by_email(self, email: str) -> Optional[DriverRecord]:
        """Case-insensitive email lookup; the first match by id wins."""
        email = (email or "").strip().lower()
        if not email:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(Driver)
                .where(func.lower(Driver.email) == email)
                .order_by(Driver.id)
                .limit(1)
            )
            driver = result.scalar_one_or_none()
            if driver is None:
                return None
            audit_rows = await self._load_audit(session, driver.id)
            return _record_from_row(driver, audit_rows)

    async def create_driver(self, record: DriverRecord, actor: str = "system") -> DriverRecord:
        """Insert a new driver and its CREATED audit event."""
        _validate_status(record.status)
        async with self._session_factory() as session:
            driver = Driver(id=record.id)
            for field in TRACKED_FIELDS:
                setattr(driver, field, getattr(record, field))
            if not driver.name and (driver.first_name or driver.last_name):
                driver.name = f"{driver.first_name} {driver.last_name}".strip()
            session.add(driver)
            session.add(
                AuditEvent(
                    driver_id=record.id,
                    actor=actor,
                    action=ACTION_CREATED,
                    field="driver",
                    old_value="",
                    new_value="created",
                    note="Driver created",
                )
            )
            await session.commit()
            audit_rows = await self._load_audit(session, driver.id)
            created = _record_from_row(driver, audit_rows)

        logger.info("Driver created: driver=%s actor=%s", record.id, actor)
        return created

    async def update_driver(self, incoming: DriverRecord, actor: str) -> Optional[DriverRecord]:
        """
        Replace the stored driver with `incoming`, auditing each changed field.

        The row is locked for the duration of the diff and write so concurrent
        admin and webhook updates serialise. Returns None when no driver with
        incoming.id exists.
        """
        _validate_status(incoming.status)
        async with self._session_factory() as session:
            driver = await session.get(Driver, incoming.id, with_for_update=True)
            if driver is None:
                await session.rollback()
                logger.warning("Driver update skipped, not found: driver=%s", incoming.id)
                return None

            audit_events = diff_driver(driver, incoming, actor)
            if audit_events:
                for field in TRACKED_FIELDS:
                    setattr(driver, field, getattr(incoming, field))
                session.add_all(audit_events)
            await session.commit()

            audit_rows = await self._load_audit(session, driver.id)
            updated = _record_from_row(driver, audit_rows)

        if audit_events:
            logger.info(
                "Driver updated: driver=%s actor=%s fields=%s",
                incoming.id, actor, ",".join(e.field for e in audit_events),
            )
        else:
            logger.debug("Driver update was a no-op: driver=%s actor=%s", incoming.id, actor)
        return updated
