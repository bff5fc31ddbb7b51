"""
Shared pytest fixtures.

Every test gets its own ClinicStore rooted in ``tmp_path`` with a small,
known clinic: two patients, two doctors, a pharmacist, an administrator,
two medications and a few AVAILABLE slots.
"""

import datetime as dt

import pytest
from cryptography.fernet import Fernet

from storage import auth as auth_module
from storage.auth import new_user
from storage.csv_store import ClinicStore
from storage.models import Medication, Slot, UserRole
from storage.settings import SlotReleasePolicy
from workflow.engine import ClinicWorkflow, PrescriptionOrder

TODAY = dt.date(2025, 3, 3)
DAY = dt.date(2025, 3, 10)
PASSWORD = "password"


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """PBKDF2 at full strength makes the suite slow; the algorithm is unchanged."""
    monkeypatch.setattr(auth_module, "_ITERATIONS", 1_000)


@pytest.fixture
def fernet() -> Fernet:
    return Fernet(Fernet.generate_key())


@pytest.fixture
def store(tmp_path, fernet) -> ClinicStore:
    s = ClinicStore(tmp_path / "data", fernet=fernet)

    s.users.add(new_user(UserRole.PATIENT, "P001", PASSWORD, "Emma Johnson", gender="Female", blood_type="A+"))
    s.users.add(new_user(UserRole.PATIENT, "P002", PASSWORD, "Oliver Smith", gender="Male"))
    s.users.add(new_user(UserRole.DOCTOR, "D001", PASSWORD, "Dr. Sophia Davis", gender="Female",
                         specialization="General Practice"))
    s.users.add(new_user(UserRole.DOCTOR, "D002", PASSWORD, "Dr. Liam Brown", gender="Male"))
    s.users.add(new_user(UserRole.PHARMACIST, "PH001", PASSWORD, "Mia Wilson", gender="Female"))
    s.users.add(new_user(UserRole.ADMINISTRATOR, "AD001", PASSWORD, "Noah Taylor", gender="Male"))

    s.medications.add(Medication(medication_id="M001", name="Paracetamol", stock_level=10, low_stock_alert_level=5))
    s.medications.add(Medication(medication_id="M002", name="Amoxicillin", stock_level=3, low_stock_alert_level=5))

    s.slots.add(Slot(slot_id="S1", doctor_id="D001", date=DAY, start_time=dt.time(9, 0), end_time=dt.time(9, 30)))
    s.slots.add(Slot(slot_id="S2", doctor_id="D001", date=DAY, start_time=dt.time(9, 30), end_time=dt.time(10, 0)))
    s.slots.add(Slot(slot_id="S3", doctor_id="D002", date=DAY, start_time=dt.time(9, 0), end_time=dt.time(9, 30)))
    return s


@pytest.fixture
def workflow(store) -> ClinicWorkflow:
    return ClinicWorkflow(store, today=lambda: TODAY)


@pytest.fixture
def reusing_workflow(store) -> ClinicWorkflow:
    return ClinicWorkflow(store, release_policy=SlotReleasePolicy.AVAILABLE, today=lambda: TODAY)


@pytest.fixture
def confirmed(workflow):
    """P001 holds a confirmed appointment with D001 in slot S1."""
    appointment = workflow.request_appointment("P001", "D001", "S1").unwrap()
    return workflow.decide_appointment(appointment.appointment_id, True).unwrap()


@pytest.fixture
def completed(workflow, confirmed):
    """The confirmed appointment, completed with one Paracetamol prescription."""
    workflow.complete_appointment(
        confirmed.appointment_id,
        "Consultation",
        notes="Mild fever",
        prescriptions=[PrescriptionOrder(medication_id="M001", quantity=4)],
    ).unwrap()
    return workflow.store.appointments.get(confirmed.appointment_id)
