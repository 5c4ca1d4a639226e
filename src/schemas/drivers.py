"""
Driver record schemas - the value objects the driver store hands out.

Handlers and routes never touch ORM rows directly: they read a DriverRecord,
build the next version with model_copy(update=...), and give the whole
record back to DriverStore.update_driver().
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

DRIVER_STATUSES = (
    "ADDITIONAL_DETAILS_SENT",
    "ADDITIONAL_DETAILS_COMPLETED",
    "INTERNAL_DETAILS_SENT",
    "INTERNAL_DETAILS_COMPLETED",
    "AWAITING_INDUCTION",
    "WITHDRAWN",
    "REJECTED",
)
DEFAULT_DRIVER_STATUS = "ADDITIONAL_DETAILS_SENT"


class AuditEventRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor: str
    action: str
    timestamp: datetime
    field: str
    old_value: str = ""
    new_value: str = ""
    note: str = ""


class DriverRecord(BaseModel):
    """Full driver record plus its audit trail (newest first)."""

    id: str
    name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    status: str = DEFAULT_DRIVER_STATUS
    applied_at: str = ""
    date_of_birth: str = ""
    national_insurance_number: str = ""
    right_to_work_check_code: str = ""
    induction_date: str = ""
    interview_date: str = ""
    id_document_type: str = ""
    id_document_number: str = ""
    id_check_completed: bool = False
    id_check_completed_at: str = ""
    drivers_license_number: str = ""
    drivers_license_expiry_date: str = ""
    address_line_1: str = ""
    address_line_2: str = ""
    city: str = ""
    postcode: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    emergency_contact_relationship: str = ""
    vehicle_type: str = ""
    preferred_days_per_week: str = ""
    preferred_start_date: str = ""
    details_confirmed_by_driver: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    audit_trail: list[AuditEventRecord] = Field(default_factory=list)


class DriverCreateRequest(BaseModel):
    """Body of POST /api/v1/drivers."""
    id: str = Field(min_length=1, max_length=64)
    actor: str = "system"
    name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    status: str = DEFAULT_DRIVER_STATUS
    applied_at: str = ""
    city: str = ""
    postcode: str = ""
    notes: str = ""


class DriverUpdateRequest(BaseModel):
    """
    Body of PUT /api/v1/drivers/{id}.
    Only fields that are explicitly sent are merged onto the stored record.
    """
    actor: str = "system"
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    applied_at: Optional[str] = None
    date_of_birth: Optional[str] = None
    national_insurance_number: Optional[str] = None
    right_to_work_check_code: Optional[str] = None
    induction_date: Optional[str] = None
    interview_date: Optional[str] = None
    id_document_type: Optional[str] = None
    id_document_number: Optional[str] = None
    id_check_completed: Optional[bool] = None
    id_check_completed_at: Optional[str] = None
    drivers_license_number: Optional[str] = None
    drivers_license_expiry_date: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    vehicle_type: Optional[str] = None
    preferred_days_per_week: Optional[str] = None
    preferred_start_date: Optional[str] = None
    details_confirmed_by_driver: Optional[str] = None
    notes: Optional[str] = None

    def patch(self) -> dict:
        """Fields the caller actually set (nulls ignored), minus the actor."""
        data = self.model_dump(exclude_unset=True, exclude={"actor"})
        return {key: value for key, value in data.items() if value is not None}
