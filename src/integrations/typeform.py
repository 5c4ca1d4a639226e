"""
Typeform integration - applies "additional details" form submissions to drivers.

Flow for one queued event:
1. Decode the payload and flatten it: string hidden fields, plus every answer
   keyed by its field ref. Refs listed in TYPEFORM_FIELD_REFS are also exposed
   under a stable semantic key.
2. Find the driver by the id hint (driverId / monday_id / driver_id), else by
   email.
3. Merge every non-blank mapped value into a copy of the driver record.
4. Append a submission note, once per external event id.
5. Save through DriverStore.update_driver() as "typeform response".
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError

from src.integrations.provider_base import WebhookProviderHandler
from src.schemas.drivers import DriverRecord
from src.schemas.webhook_payloads import TypeformWebhook, typeform_answer_adapter

logger = logging.getLogger(__name__)

PROVIDER = "typeform"
PROVIDER_LABEL = "Typeform"
ACTOR = "typeform response"

# Typeform field ref -> semantic key (additional details form)
TYPEFORM_FIELD_REFS = {
    "bbc1908b-14c5-4b99-8365-5055c2c9cefc": "details_confirmed",
    "d2745455-71ba-4d31-a07b-c675350b8730": "date_of_birth",
    "92fc8a3f-466e-4dbf-825b-5c1f211c3940": "national_insurance_number",
    "ddd7b1a2-972a-48e5-9fe8-e8204c5de29b": "emergency_contact_name",
    "02bac3a4-d6e6-4bd8-a944-8648612ab95f": "emergency_contact_relationship",
    "acff250a-11fe-4845-affc-b5db5c5cea7f": "emergency_contact_phone",
    "185eb1c7-20bb-4ea9-984a-a8aa1732c01e": "preferred_days_per_week",
    "b458f157-4547-4279-bc8f-7f1a5f341413": "preferred_start_day",
    "07cc1c10-b4e4-4f01-9774-073cb5cae0f8": "preferred_start_date",
}

# Semantic key -> driver attribute, for plain string values
STRING_FIELD_MAP = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone_number": "phone",
    "date_of_birth": "date_of_birth",
    "national_insurance_number": "national_insurance_number",
    "right_to_work_check_code": "right_to_work_check_code",
    "induction_date": "induction_date",
    "interview_date": "interview_date",
    "id_document_type": "id_document_type",
    "id_document_number": "id_document_number",
    "drivers_license_number": "drivers_license_number",
    "drivers_license_expiry_date": "drivers_license_expiry_date",
    "address_line_1": "address_line_1",
    "address_line_2": "address_line_2",
    "city": "city",
    "postcode": "postcode",
    "emergency_contact_name": "emergency_contact_name",
    "emergency_contact_phone": "emergency_contact_phone",
    "emergency_contact_relationship": "emergency_contact_relationship",
    "vehicle_type": "vehicle_type",
    "id_check_completed_at": "id_check_completed_at",
    "notes": "notes",
    "preferred_days_per_week": "preferred_days_per_week",
    "preferred_start_date": "preferred_start_date",
}

DRIVER_ID_HINT_KEYS = ("driverId", "monday_id", "driver_id")

FieldValue = Union[str, bool]


class DriverNotMatchedError(LookupError):
    """The submission could not be tied to a stored driver."""


@dataclass
class TypeformSubmission:
    driver_id: str = ""
    email: str = ""
    submitted_at: str = ""
    fields: dict[str, FieldValue] = field(default_factory=dict)


def extract_typeform_event_id(payload: Any) -> Optional[str]:
    """Typeform's own event id, else the response token."""
    if not isinstance(payload, dict):
        return None
    event_id = payload.get("event_id")
    if isinstance(event_id, str) and event_id.strip():
        return event_id.strip()
    form_response = payload.get("form_response")
    token = form_response.get("token") if isinstance(form_response, dict) else None
    if isinstance(token, str) and token.strip():
        return token.strip()
    return None


def _read_string(fields: dict[str, FieldValue], key: str) -> Optional[str]:
    value = fields.get(key)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def parse_submission(payload: Any) -> TypeformSubmission:
    """Flatten a Typeform webhook into semantic fields. Raises ValidationError on a bad envelope."""
    response = TypeformWebhook.model_validate(payload).form_response

    fields: dict[str, FieldValue] = {
        key: value for key, value in response.hidden.items() if isinstance(value, str)
    }

    for raw_answer in response.answers:
        if not isinstance(raw_answer, dict):
            logger.debug("Skipping non-object Typeform answer: %r", raw_answer)
            continue
        try:
            answer = typeform_answer_adapter.validate_python(raw_answer)
        except ValidationError:
            logger.debug("Skipping unsupported Typeform answer type=%s", raw_answer.get("type"))
            continue
        ref = answer.field.ref
        value = answer.flat_value()
        if not ref or value is None:
            continue
        fields[ref] = value
        semantic_key = TYPEFORM_FIELD_REFS.get(ref)
        if semantic_key:
            fields[semantic_key] = value

    driver_id = ""
    for key in DRIVER_ID_HINT_KEYS:
        hint = _read_string(fields, key)
        if hint:
            driver_id = hint
            break

    return TypeformSubmission(
        driver_id=driver_id,
        email=_read_string(fields, "email") or response.hidden_email.strip(),
        submitted_at=response.submitted_at.strip(),
        fields=fields,
    )


def _append_line(notes: str, line: str) -> str:
    return f"{notes}\n{line}" if notes else line


def build_driver_update(
    driver: DriverRecord,
    submission: TypeformSubmission,
    external_event_id: str,
) -> DriverRecord:
    """Merge a submission into a copy of the driver. Blank and unknown fields are ignored."""
    fields = submission.fields
    patch: dict[str, Any] = {}

    for key, attribute in STRING_FIELD_MAP.items():
        value = _read_string(fields, key)
        if value:
            patch[attribute] = value

    id_check_completed = fields.get("id_check_completed")
    if isinstance(id_check_completed, bool):
        patch["id_check_completed"] = id_check_completed

    details_confirmed = fields.get("details_confirmed")
    if isinstance(details_confirmed, bool):
        patch["details_confirmed_by_driver"] = "yes" if details_confirmed else "no"

    updated = driver.model_copy(update=patch)
    if updated.first_name and updated.last_name:
        updated.name = f"{updated.first_name} {updated.last_name}"

    notes = updated.notes
    preferred_start_day = _read_string(fields, "preferred_start_day")
    if preferred_start_day:
        line = f"Preferred start day (4-day week): {preferred_start_day}"
        if line not in notes.splitlines():
            notes = _append_line(notes, line)

    marker = f"(event {external_event_id})"
    if marker not in notes:
        when = submission.submitted_at or datetime.now(timezone.utc).isoformat()
        notes = _append_line(
            notes, f"[{PROVIDER_LABEL}] submission received at {when} {marker}"
        )
    updated.notes = notes
    return updated


class TypeformHandler(WebhookProviderHandler):
    """Applies Typeform additional-details submissions to driver records."""

    provider = PROVIDER

    def __init__(self, driver_store):
        self.driver_store = driver_store

    async def _resolve_driver(self, submission: TypeformSubmission) -> Optional[DriverRecord]:
        driver = None
        if submission.driver_id:
            driver = await self.driver_store.get_driver(submission.driver_id)
        if driver is None and submission.email:
            driver = await self.driver_store.find_driver_by_email(submission.email)
        return driver

    async def handle(self, payload: Any, external_event_id: str) -> None:
        submission = parse_submission(payload)
        driver = await self._resolve_driver(submission)
        if driver is None:
            logger.warning(
                "Typeform submission matched no driver: driver_hint=%s event=%s",
                submission.driver_id or "-", external_event_id[:40],
            )
            raise DriverNotMatchedError("No driver matched webhook payload")

        updated = build_driver_update(driver, submission, external_event_id)
        saved = await self.driver_store.update_driver(updated, actor=ACTOR)
        if saved is None:
            raise DriverNotMatchedError("Driver update failed")

        logger.info(
            "Typeform submission applied: driver=%s event=%s",
            driver.id, external_event_id[:40],
            extra={"driver_id": driver.id, "external_event_id": external_event_id},
        )
