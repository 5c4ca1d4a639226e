"""
Seed the reference drivers into the database.

Safe to re-run: drivers whose id already exists are skipped.

Usage:
    python scripts/seed_drivers.py
"""
import asyncio
import logging

from src.database import dispose_engine, get_session_factory
from src.schemas.drivers import DriverRecord
from src.services.driver_store import DriverStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED_ACTOR = "seed"

SEED_DRIVERS = [
    {
        "id": "1",
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@example.com",
        "phone": "+1 555-0101",
        "status": "AWAITING_INDUCTION",
        "applied_at": "2025-01-15T10:00:00Z",
        "date_of_birth": "1994-04-11",
        "national_insurance_number": "QQ123456C",
        "right_to_work_check_code": "RTW-7HF2-K91L",
        "induction_date": "2025-01-22T09:00:00Z",
        "interview_date": "2025-01-18T13:30:00Z",
        "id_document_type": "Passport",
        "id_document_number": "569202991",
        "id_check_completed": True,
        "id_check_completed_at": "2025-01-19T15:00:00Z",
        "drivers_license_number": "DOEJA945443A99AB",
        "drivers_license_expiry_date": "2028-07-31",
        "address_line_1": "42 King Street",
        "address_line_2": "Flat 2",
        "city": "Manchester",
        "postcode": "M1 1AE",
        "emergency_contact_name": "Mark Doe",
        "emergency_contact_phone": "+44 7700 900111",
        "vehicle_type": "Car",
        "notes": "Prefers morning shifts.",
    },
    {
        "id": "2",
        "first_name": "John",
        "last_name": "Smith",
        "email": "john@example.com",
        "phone": "+1 555-0102",
        "status": "ADDITIONAL_DETAILS_SENT",
        "applied_at": "2025-02-01T14:30:00Z",
        "date_of_birth": "1992-08-21",
        "national_insurance_number": "QQ223456D",
        "right_to_work_check_code": "RTW-1DT9-T2AZ",
        "interview_date": "2025-02-04T11:00:00Z",
        "id_document_type": "Driving licence",
        "id_document_number": "SMI223800",
        "drivers_license_number": "SMITH922188JS9CD",
        "drivers_license_expiry_date": "2027-12-01",
        "address_line_1": "77 Bridge Road",
        "city": "Leeds",
        "postcode": "LS1 4AB",
        "emergency_contact_name": "Emily Smith",
        "emergency_contact_phone": "+44 7700 900222",
        "vehicle_type": "Van",
        "notes": "Needs weekday evening availability.",
    },
    {
        "id": "3",
        "first_name": "Alex",
        "last_name": "Rivera",
        "email": "alex.rivera@example.com",
        "phone": "+1 555-0103",
        "status": "ADDITIONAL_DETAILS_COMPLETED",
        "applied_at": "2025-02-10T09:15:00Z",
        "date_of_birth": "1990-02-03",
        "national_insurance_number": "QQ323456E",
        "right_to_work_check_code": "RTW-L9AT-4P2X",
        "interview_date": "2025-02-12T10:30:00Z",
        "id_document_type": "National ID",
        "id_document_number": "AR-119911",
        "drivers_license_number": "RIVER903333AR7QX",
        "drivers_license_expiry_date": "2029-03-09",
        "address_line_1": "10 Queen Lane",
        "city": "Liverpool",
        "postcode": "L1 2PQ",
        "emergency_contact_name": "Taylor Rivera",
        "emergency_contact_phone": "+44 7700 900333",
        "vehicle_type": "Bike",
        "notes": "Can cover weekend routes.",
    },
    {
        "id": "4",
        "first_name": "Sam",
        "last_name": "Chen",
        "email": "sam.chen@example.com",
        "phone": "+1 555-0104",
        "status": "REJECTED",
        "applied_at": "2025-01-20T11:00:00Z",
        "date_of_birth": "1988-06-17",
        "national_insurance_number": "QQ423456F",
        "right_to_work_check_code": "RTW-W8K2-A8R1",
        "interview_date": "2025-01-23T16:00:00Z",
        "id_document_type": "Passport",
        "id_document_number": "772189456",
        "id_check_completed": True,
        "id_check_completed_at": "2025-01-22T12:10:00Z",
        "drivers_license_number": "CHENS883311SC2UV",
        "drivers_license_expiry_date": "2026-10-15",
        "address_line_1": "13 Station Place",
        "city": "Bristol",
        "postcode": "BS1 5NN",
        "emergency_contact_name": "Morgan Chen",
        "emergency_contact_phone": "+44 7700 900444",
        "vehicle_type": "Car",
        "notes": "Rejected due to expired licence.",
    },
    {
        "id": "5",
        "first_name": "Jordan",
        "last_name": "Lee",
        "email": "jordan.lee@example.com",
        "phone": "+1 555-0105",
        "status": "INTERNAL_DETAILS_COMPLETED",
        "applied_at": "2025-02-05T16:45:00Z",
        "date_of_birth": "1996-12-29",
        "national_insurance_number": "QQ523456G",
        "right_to_work_check_code": "RTW-9PQ3-M5Z8",
        "induction_date": "2025-02-11T09:30:00Z",
        "interview_date": "2025-02-07T14:00:00Z",
        "id_document_type": "Passport",
        "id_document_number": "991843201",
        "id_check_completed": True,
        "id_check_completed_at": "2025-02-08T10:10:00Z",
        "drivers_license_number": "LEEJO964422JL1LM",
        "drivers_license_expiry_date": "2030-11-11",
        "address_line_1": "8 West End",
        "city": "Birmingham",
        "postcode": "B1 1AA",
        "emergency_contact_name": "Chris Lee",
        "emergency_contact_phone": "+44 7700 900555",
        "vehicle_type": "Car",
        "notes": "Strong customer rating in prior role.",
    },
]


async def seed():
    store = DriverStore(get_session_factory())
    created = 0
    try:
        for data in SEED_DRIVERS:
            existing = await store.get_driver(data["id"])
            if existing:
                logger.info("Driver %s (%s) already exists. Skipping.", existing.id, existing.name)
                continue
            await store.create_driver(DriverRecord(**data), actor=SEED_ACTOR)
            created += 1
    finally:
        await dispose_engine()

    logger.info("Seed complete: %d created, %d skipped", created, len(SEED_DRIVERS) - created)


if __name__ == "__main__":
    asyncio.run(seed())
