"""
storage/seed.py

Demo data for a fresh install.

Adds one user per role (password ``password``), a small formulary and a week
of AVAILABLE morning slots for each demo doctor.  Runs only when the store
has no users, so it never touches an existing clinic.

NOT real PHI.
"""

from __future__ import annotations

import datetime as dt
import logging

from storage.auth import DEFAULT_PASSWORD, new_user
from storage.csv_store import ClinicStore
from storage.models import Medication, Slot, UserRole

logger = logging.getLogger(__name__)

DEMO_PASSWORD = DEFAULT_PASSWORD

DEMO_USERS = [
    dict(role=UserRole.PATIENT, user_id="P001", name="Emma Johnson", date_of_birth="1990-04-12",
         gender="Female", contact_number="91234567", email_address="emma@demo.com", blood_type="A+"),
    dict(role=UserRole.PATIENT, user_id="P002", name="Oliver Smith", date_of_birth="1985-09-30",
         gender="Male", contact_number="98765432", email_address="oliver@demo.com", blood_type="O-"),
    dict(role=UserRole.DOCTOR, user_id="D001", name="Dr. Sophia Davis", gender="Female",
         specialization="General Practice"),
    dict(role=UserRole.DOCTOR, user_id="D002", name="Dr. Liam Brown", gender="Male",
         specialization="Cardiology"),
    dict(role=UserRole.PHARMACIST, user_id="PH001", name="Mia Wilson", gender="Female"),
    dict(role=UserRole.ADMINISTRATOR, user_id="AD001", name="Noah Taylor", gender="Male"),
]

DEMO_MEDICATIONS = [
    ("M001", "Paracetamol", 100, 20),
    ("M002", "Ibuprofen", 50, 10),
    ("M003", "Amoxicillin", 8, 10),
]

_SLOT_TIMES = [(dt.time(9, 0), dt.time(9, 30)), (dt.time(9, 30), dt.time(10, 0)), (dt.time(10, 0), dt.time(10, 30))]
_SLOT_DAYS = 5


def seed_demo_data_if_needed(store: ClinicStore, today: dt.date | None = None) -> bool:
    """
    Populate an empty store with demo users, medications and slots.

    Returns:
        ``True`` if anything was added.
    """
    if len(store.users):
        return False

    start = (today or dt.date.today()) + dt.timedelta(days=1)
    for demo in DEMO_USERS:
        profile = dict(demo)
        role, user_id, name = profile.pop("role"), profile.pop("user_id"), profile.pop("name")
        store.users.add(new_user(role, user_id, DEMO_PASSWORD, name, **profile))

    for medication_id, name, stock, alert in DEMO_MEDICATIONS:
        if store.medications.get(medication_id) is None:
            store.medications.add(
                Medication(medication_id=medication_id, name=name, stock_level=stock, low_stock_alert_level=alert)
            )

    for doctor in store.users.filter(role=UserRole.DOCTOR):
        for offset in range(_SLOT_DAYS):
            day = start + dt.timedelta(days=offset)
            for start_time, end_time in _SLOT_TIMES:
                store.slots.add(
                    Slot(
                        slot_id=store.slots.next_id(),
                        doctor_id=doctor.user_id,
                        date=day,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )

    store.save()
    logger.info(
        "Seeded demo clinic: %d users, %d medications, %d slots",
        len(store.users), len(store.medications), len(store.slots),
    )
    return True
