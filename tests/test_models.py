"""Entity model validation and the role-narrowing user union."""

import datetime as dt

import pytest
from pydantic import ValidationError

from storage.models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    Medication,
    Patient,
    Prescription,
    RoleMismatchError,
    Slot,
    SlotStatus,
    parse_user,
)


def _slot(slot_id="S1", doctor_id="D001", start=(9, 0), end=(9, 30), day=dt.date(2025, 3, 10)):
    return Slot(
        slot_id=slot_id,
        doctor_id=doctor_id,
        date=day,
        start_time=dt.time(*start),
        end_time=dt.time(*end),
    )


class TestUsers:
    def test_parse_user_picks_variant_from_role(self):
        user = parse_user({"user_id": "D9", "password_hash": "x:y", "role": "doctor", "name": "Dr. X"})
        assert isinstance(user, Doctor)

    def test_patient_narrows_to_patient(self):
        user = parse_user({"user_id": "P9", "password_hash": "x:y", "role": "PATIENT", "name": "Pat"})
        assert user.as_patient() is user

    def test_wrong_role_raises(self):
        user = parse_user({"user_id": "P9", "password_hash": "x:y", "role": "PATIENT", "name": "Pat"})
        with pytest.raises(RoleMismatchError):
            user.as_doctor()

    def test_role_mismatch_is_permission_error(self):
        assert issubclass(RoleMismatchError, PermissionError)

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            parse_user({"user_id": "X", "password_hash": "x:y", "role": "janitor", "name": "X"})

    def test_patient_blood_type_defaults_empty(self):
        assert Patient(user_id="P9", password_hash="x:y", name="Pat").blood_type == ""


class TestSlot:
    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            _slot(start=(10, 0), end=(9, 0))

    def test_defaults_to_available(self):
        assert _slot().status == SlotStatus.AVAILABLE

    def test_overlap_same_doctor_same_day(self):
        assert _slot().overlaps(_slot("S2", start=(9, 15), end=(9, 45)))

    def test_adjacent_slots_do_not_overlap(self):
        assert not _slot().overlaps(_slot("S2", start=(9, 30), end=(10, 0)))

    def test_other_doctor_never_overlaps(self):
        assert not _slot().overlaps(_slot("S2", doctor_id="D002"))

    def test_display_rank_order(self):
        ranked = sorted(SlotStatus, key=lambda s: s.display_rank)
        assert ranked == [
            SlotStatus.BOOKED,
            SlotStatus.PENDING,
            SlotStatus.AVAILABLE,
            SlotStatus.COMPLETED,
            SlotStatus.REMOVED,
        ]


class TestAppointment:
    def test_status_is_case_insensitive(self):
        appt = Appointment(appointment_id="A1", patient_id="P1", doctor_id="D1", slot_id="S1", status="confirmed")
        assert appt.status == AppointmentStatus.CONFIRMED

    def test_single_l_cancelled_accepted(self):
        appt = Appointment(appointment_id="A1", patient_id="P1", doctor_id="D1", slot_id="S1", status="CANCELED")
        assert appt.status == AppointmentStatus.CANCELLED

    def test_active_statuses(self):
        assert AppointmentStatus.REQUESTED.is_active
        assert AppointmentStatus.CONFIRMED.is_active
        assert not AppointmentStatus.COMPLETED.is_active
        assert not AppointmentStatus.CANCELLED.is_active


class TestInventoryModels:
    def test_low_stock_is_strictly_below_alert(self):
        assert Medication(medication_id="M1", name="A", stock_level=4, low_stock_alert_level=5).is_low_stock
        assert not Medication(medication_id="M1", name="A", stock_level=5, low_stock_alert_level=5).is_low_stock

    def test_negative_stock_rejected(self):
        with pytest.raises(ValidationError):
            Medication(medication_id="M1", name="A", stock_level=-1, low_stock_alert_level=5)

    def test_prescription_quantity_positive(self):
        with pytest.raises(ValidationError):
            Prescription(prescription_id="RX1", appointment_id="A1", medication_id="M1", quantity=0)
