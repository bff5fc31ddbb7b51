"""Role portals: role binding, ownership checks and staff management."""

import datetime as dt

import pytest

from storage.models import RoleMismatchError, SlotStatus, UserRole
from workflow.result import ErrorKind
from workflow.roles import (
    AdministratorPortal,
    DoctorPortal,
    PatientPortal,
    PharmacistPortal,
    portal_for,
)


def _portal(cls, workflow, user_id):
    return cls(workflow, workflow.store.users.get(user_id))


class TestBinding:
    def test_wrong_role_raises(self, workflow):
        with pytest.raises(RoleMismatchError):
            _portal(DoctorPortal, workflow, "P001")

    def test_portal_for_picks_by_role(self, workflow):
        portal = portal_for(workflow, workflow.store.users.get("PH001"))
        assert isinstance(portal, PharmacistPortal)


class TestPatientPortal:
    def test_books_and_cancels_own_appointment(self, workflow):
        portal = _portal(PatientPortal, workflow, "P001")
        appt = portal.request_appointment("D001", "S1").unwrap()
        assert portal.scheduled_appointments() == [appt]
        assert portal.cancel_appointment(appt.appointment_id).ok
        assert workflow.store.slots.get("S1").status == SlotStatus.REMOVED
        assert portal.cancel_appointment(appt.appointment_id).error.kind == ErrorKind.INVALID_STATE

    def test_cannot_touch_other_patients_appointment(self, workflow, confirmed):
        portal = _portal(PatientPortal, workflow, "P002")
        assert portal.cancel_appointment(confirmed.appointment_id).error.kind == ErrorKind.NOT_FOUND
        assert portal.reschedule_appointment(confirmed.appointment_id, "S2").error.kind == ErrorKind.NOT_FOUND

    def test_update_contact_details(self, workflow):
        portal = _portal(PatientPortal, workflow, "P001")
        portal.update_contact_number("81112222").unwrap()
        portal.update_email_address("emma@clinic.test").unwrap()
        user = workflow.store.users.get("P001")
        assert (user.contact_number, user.email_address) == ("81112222", "emma@clinic.test")

    def test_bad_email_rejected(self, workflow):
        portal = _portal(PatientPortal, workflow, "P001")
        assert portal.update_email_address("nope").error.kind == ErrorKind.INVALID_ARGUMENT


class TestDoctorPortal:
    def test_decides_only_own_requests(self, workflow):
        appt = workflow.request_appointment("P001", "D001", "S1").unwrap()
        other = _portal(DoctorPortal, workflow, "D002")
        assert other.decide_appointment(appt.appointment_id, True).error.kind == ErrorKind.NOT_FOUND
        assert _portal(DoctorPortal, workflow, "D001").decide_appointment(appt.appointment_id, True).ok

    def test_record_requires_patient_under_care(self, workflow, confirmed):
        assert _portal(DoctorPortal, workflow, "D001").medical_record("P001").ok
        assert _portal(DoctorPortal, workflow, "D002").medical_record("P001").error.kind == ErrorKind.NOT_FOUND

    def test_add_history_for_own_patient(self, workflow, confirmed):
        doctor = _portal(DoctorPortal, workflow, "D001")
        entry = doctor.add_history("P001", "Migraine", "Rest").unwrap()
        assert doctor.update_history(entry.history_id, treatment="Ibuprofen").unwrap().treatment == "Ibuprofen"
        assert _portal(DoctorPortal, workflow, "D002").update_history(entry.history_id, "x").error.kind == ErrorKind.NOT_FOUND

    def test_create_slot_for_self(self, workflow):
        doctor = _portal(DoctorPortal, workflow, "D002")
        slot = doctor.create_slot(dt.date(2025, 3, 11), dt.time(13, 0), dt.time(13, 30)).unwrap()
        assert slot.doctor_id == "D002"


class TestPharmacistPortal:
    def test_requests_are_attributed(self, workflow):
        portal = _portal(PharmacistPortal, workflow, "PH001")
        request = portal.submit_replenishment_request("M002", 10).unwrap()
        assert request.requested_by == "PH001"
        assert portal.my_requests() == [request]


class TestAdministratorPortal:
    def test_list_staff_excludes_patients(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert {u.user_id for u in admin.list_staff()} == {"D001", "D002", "PH001", "AD001"}

    def test_list_staff_filters(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert [u.user_id for u in admin.list_staff(role="Doctor", gender="female")] == ["D001"]

    def test_add_staff(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        staff = admin.add_staff(UserRole.DOCTOR, "D003", "pw", "Dr. New", specialization="Dermatology").unwrap()
        assert workflow.store.users.get("D003") == staff

    def test_add_staff_duplicate_id(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert admin.add_staff(UserRole.DOCTOR, "D001", "pw", "Dup").error.kind == ErrorKind.INVALID_ARGUMENT

    def test_add_patient_is_not_staff(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert admin.add_staff(UserRole.PATIENT, "P009", "pw", "Pat").error.kind == ErrorKind.INVALID_ARGUMENT
        assert workflow.store.users.get("P009") is None

    def test_update_staff(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        updated = admin.update_staff("PH001", name="Mia W.", email_address="").unwrap()
        assert updated.name == "Mia W."

    def test_update_unknown_field(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert admin.update_staff("PH001", role="DOCTOR").error.kind == ErrorKind.INVALID_ARGUMENT

    def test_update_field_of_other_role_rejected(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        result = admin.update_staff("PH001", specialization="Oncology")
        assert result.error.kind == ErrorKind.INVALID_ARGUMENT
        assert admin.update_staff("D002", specialization="Oncology").unwrap().specialization == "Oncology"

    def test_remove_staff(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        admin.remove_staff("PH001").unwrap()
        assert workflow.store.users.get("PH001") is None

    def test_cannot_remove_self(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert admin.remove_staff("AD001").error.kind == ErrorKind.INVALID_STATE

    def test_cannot_remove_patient(self, workflow):
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert admin.remove_staff("P001").error.kind == ErrorKind.NOT_FOUND

    def test_approve_records_admin(self, workflow):
        request = workflow.submit_replenishment_request("M002", 5, "PH001").unwrap()
        admin = _portal(AdministratorPortal, workflow, "AD001")
        assert admin.approve_request(request.request_id).unwrap().approved_by == "AD001"

    def test_add_staff_not_saved_is_not_kept(self, workflow):
        workflow.store.save()
        workflow.store.autosave = True
        (workflow.store.data_dir / "users.tmp").mkdir()
        admin = _portal(AdministratorPortal, workflow, "AD001")
        result = admin.add_staff(UserRole.PHARMACIST, "PH009", "pw", "Lee Park")
        assert result.error.kind == ErrorKind.STORAGE_ERROR
        assert workflow.store.users.get("PH009") is None
