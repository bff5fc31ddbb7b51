"""
workflow/roles.py

Role portals: what each kind of user may do, bound to that user.

Each portal wraps one :class:`ClinicWorkflow` and one authenticated user.
Constructing a portal for a user of the wrong role raises
:class:`RoleMismatchError`.  Operations on records the user does not own
(another patient's appointment, another doctor's slot) fail with NOT_FOUND,
so a portal never reveals what exists outside its user's reach.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Sequence

from pydantic import ValidationError

from storage.auth import AuthenticationError, new_user
from storage.csv_store import StoreError
from storage.models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    HistoryEntry,
    MedicalRecord,
    Medication,
    Outcome,
    OutcomeView,
    Patient,
    Prescription,
    Request,
    Slot,
    User,
    UserRole,
)
from workflow.engine import ClinicWorkflow, PrescriptionOrder
from workflow.result import WorkflowResult, invalid_argument, invalid_state, not_found

logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.DOCTOR, UserRole.PHARMACIST, UserRole.ADMINISTRATOR)

# Profile fields a user may change about themselves or an admin about staff.
_PROFILE_FIELDS = ("name", "date_of_birth", "gender", "contact_number", "email_address", "specialization")


class _Portal:
    def __init__(self, workflow: ClinicWorkflow, user: User):
        self.workflow = workflow
        self._user_id = user.user_id

    @property
    def store(self):
        return self.workflow.store

    @property
    def user(self) -> User:
        # Re-read so edits made through another portal are visible.
        return self.store.users.get(self._user_id)

    def _update_self(self, **changes: Any) -> WorkflowResult[User]:
        user = self.user
        if user is None:
            return not_found(f"User {self._user_id} not found.")
        try:
            updated = type(user).model_validate({**user.model_dump(), **changes})
        except ValidationError as exc:
            return invalid_argument(str(exc))
        self.store.users.update(updated)
        failed = self.workflow.commit("update_profile")
        if failed is not None:
            return failed
        logger.info("User %s updated %s", self._user_id, ", ".join(changes))
        return WorkflowResult.success(updated)


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------


class PatientPortal(_Portal):
    def __init__(self, workflow: ClinicWorkflow, user: User):
        super().__init__(workflow, user.as_patient())

    @property
    def patient_id(self) -> str:
        return self._user_id

    def _own(self, appointment_id: str) -> Appointment | None:
        appointment = self.store.appointments.get(appointment_id)
        if appointment is None or appointment.patient_id != self.patient_id:
            return None
        return appointment

    def doctors(self) -> list[Doctor]:
        return [u.as_doctor() for u in self.store.users.filter(role=UserRole.DOCTOR)]

    def available_slots(self, doctor_id: str, on_date: dt.date | None = None) -> list[Slot]:
        return self.workflow.available_slots(doctor_id, on_date)

    def request_appointment(self, doctor_id: str, slot_id: str) -> WorkflowResult[Appointment]:
        return self.workflow.request_appointment(self.patient_id, doctor_id, slot_id)

    def reschedule_appointment(self, appointment_id: str, new_slot_id: str) -> WorkflowResult[Appointment]:
        if self._own(appointment_id) is None:
            return not_found(f"Appointment {appointment_id} not found.")
        return self.workflow.reschedule_appointment(appointment_id, new_slot_id)

    def cancel_appointment(self, appointment_id: str) -> WorkflowResult[Appointment]:
        if self._own(appointment_id) is None:
            return not_found(f"Appointment {appointment_id} not found.")
        return self.workflow.cancel_appointment(appointment_id)

    def scheduled_appointments(self) -> list[Appointment]:
        return self.workflow.scheduled_appointments(self.patient_id)

    def past_appointments(self) -> list[Appointment]:
        return self.workflow.past_appointments(self.patient_id)

    def outcomes(self) -> list[OutcomeView]:
        return self.workflow.outcome_views(self.patient_id)

    def medical_record(self) -> MedicalRecord:
        return self.workflow.medical_record(self.patient_id).unwrap()

    def update_contact_number(self, contact_number: str) -> WorkflowResult[User]:
        if not contact_number or not contact_number.strip():
            return invalid_argument("Contact number cannot be empty.")
        return self._update_self(contact_number=contact_number.strip())

    def update_email_address(self, email_address: str) -> WorkflowResult[User]:
        email_address = (email_address or "").strip()
        if "@" not in email_address:
            return invalid_argument("Email address must contain '@'.")
        return self._update_self(email_address=email_address)


# ---------------------------------------------------------------------------
# Doctor
# ---------------------------------------------------------------------------


class DoctorPortal(_Portal):
    def __init__(self, workflow: ClinicWorkflow, user: User):
        super().__init__(workflow, user.as_doctor())

    @property
    def doctor_id(self) -> str:
        return self._user_id

    def _own(self, appointment_id: str) -> Appointment | None:
        appointment = self.store.appointments.get(appointment_id)
        if appointment is None or appointment.doctor_id != self.doctor_id:
            return None
        return appointment

    def _patient_in_care(self, patient_id: str) -> bool:
        return self.workflow.is_under_care(self.doctor_id, patient_id)

    # Schedule
    def schedule(self) -> list[Slot]:
        return self.workflow.doctor_schedule(self.doctor_id)

    def create_slot(self, date: dt.date, start_time: dt.time, end_time: dt.time) -> WorkflowResult[Slot]:
        return self.workflow.create_slot(self.doctor_id, date, start_time, end_time)

    def remove_slot(self, slot_id: str) -> WorkflowResult[Slot]:
        return self.workflow.remove_slot(slot_id, doctor_id=self.doctor_id)

    # Appointments
    def pending_requests(self) -> list[Appointment]:
        return self.workflow.pending_requests(self.doctor_id)

    def upcoming_appointments(self) -> list[Appointment]:
        return self.workflow.upcoming_appointments(self.doctor_id)

    def decide_appointment(self, appointment_id: str, accept: bool) -> WorkflowResult[Appointment]:
        if self._own(appointment_id) is None:
            return not_found(f"Appointment {appointment_id} not found.")
        return self.workflow.decide_appointment(appointment_id, accept)

    def complete_appointment(
        self,
        appointment_id: str,
        service_provided: str,
        notes: str = "",
        prescriptions: Sequence[PrescriptionOrder] = (),
        prescription_ref: str | None = None,
    ) -> WorkflowResult[Outcome]:
        if self._own(appointment_id) is None:
            return not_found(f"Appointment {appointment_id} not found.")
        return self.workflow.complete_appointment(
            appointment_id, service_provided, prescription_ref, notes, prescriptions
        )

    def add_prescription(
        self, appointment_id: str, medication_id: str, quantity: int, notes: str = ""
    ) -> WorkflowResult[Prescription]:
        if self._own(appointment_id) is None:
            return not_found(f"Appointment {appointment_id} not found.")
        return self.workflow.add_prescription(appointment_id, medication_id, quantity, notes)

    # Patients
    def patients_under_care(self) -> list[Patient]:
        return self.workflow.patients_under_care(self.doctor_id)

    def medical_record(self, patient_id: str) -> WorkflowResult[MedicalRecord]:
        if not self._patient_in_care(patient_id):
            return not_found(f"Patient {patient_id} is not under your care.")
        return self.workflow.medical_record(patient_id)

    def add_history(self, patient_id: str, diagnosis: str, treatment: str = "") -> WorkflowResult[HistoryEntry]:
        if not self._patient_in_care(patient_id):
            return not_found(f"Patient {patient_id} is not under your care.")
        return self.workflow.add_history(patient_id, diagnosis, treatment)

    def update_history(
        self, history_id: str, diagnosis: str | None = None, treatment: str | None = None
    ) -> WorkflowResult[HistoryEntry]:
        entry = self.store.history.get(history_id)
        if entry is None or not self._patient_in_care(entry.patient_id):
            return not_found(f"History entry {history_id} not found.")
        return self.workflow.update_history(history_id, diagnosis, treatment)

    def medications(self) -> list[Medication]:
        return self.store.medications.all()


# ---------------------------------------------------------------------------
# Pharmacist
# ---------------------------------------------------------------------------


class PharmacistPortal(_Portal):
    def __init__(self, workflow: ClinicWorkflow, user: User):
        super().__init__(workflow, user.as_pharmacist())

    def outcomes(self) -> list[OutcomeView]:
        return self.workflow.outcome_views()

    def pending_prescriptions(self) -> list[Prescription]:
        return self.workflow.pending_prescriptions()

    def dispense(self, prescription_id: str) -> WorkflowResult[Prescription]:
        return self.workflow.dispense(prescription_id)

    def inventory(self) -> list[Medication]:
        return self.store.medications.all()

    def low_stock_medications(self) -> list[Medication]:
        return self.workflow.low_stock_medications()

    def submit_replenishment_request(self, medication_id: str, quantity: int) -> WorkflowResult[Request]:
        return self.workflow.submit_replenishment_request(medication_id, quantity, self._user_id)

    def my_requests(self) -> list[Request]:
        return self.store.requests.filter(requested_by=self._user_id)


# ---------------------------------------------------------------------------
# Administrator
# ---------------------------------------------------------------------------


class AdministratorPortal(_Portal):
    def __init__(self, workflow: ClinicWorkflow, user: User):
        super().__init__(workflow, user.as_administrator())

    # Staff
    def list_staff(self, role: str | None = None, gender: str | None = None) -> list[User]:
        """Staff members, optionally filtered by role and gender (case-insensitive)."""
        criteria = {}
        if role:
            criteria["role"] = role
        if gender:
            criteria["gender"] = gender
        return [u for u in self.store.users.filter(**criteria) if u.role in STAFF_ROLES]

    def add_staff(
        self, role: UserRole | str, user_id: str, password: str, name: str, **profile: Any
    ) -> WorkflowResult[User]:
        try:
            staff = new_user(role, user_id, password, name, **profile)
        except (AuthenticationError, ValidationError) as exc:
            return invalid_argument(str(exc))
        if staff.role not in STAFF_ROLES:
            return invalid_argument(f"{staff.role.value} is not a staff role.")
        try:
            self.store.users.add(staff)
        except StoreError as exc:
            return invalid_argument(str(exc))
        failed = self.workflow.commit("add_staff")
        if failed is not None:
            return failed
        logger.info("Staff %s (%s) added by %s", staff.user_id, staff.role.value, self._user_id)
        return WorkflowResult.success(staff)

    def update_staff(self, user_id: str, **changes: Any) -> WorkflowResult[User]:
        """Change profile fields of a staff member; empty values are ignored."""
        staff = self.store.users.get(user_id)
        if staff is None or staff.role not in STAFF_ROLES:
            return not_found(f"Staff member {user_id} not found.")
        unknown = set(changes) - (set(_PROFILE_FIELDS) & set(type(staff).model_fields))
        if unknown:
            return invalid_argument(f"Cannot update {', '.join(sorted(unknown))}.")
        changes = {k: v.strip() for k, v in changes.items() if v and v.strip()}
        if not changes:
            return invalid_argument("Nothing to update.")
        try:
            updated = type(staff).model_validate({**staff.model_dump(), **changes})
        except ValidationError as exc:
            return invalid_argument(str(exc))
        self.store.users.update(updated)
        failed = self.workflow.commit("update_staff")
        if failed is not None:
            return failed
        logger.info("Staff %s updated by %s", user_id, self._user_id)
        return WorkflowResult.success(updated)

    def remove_staff(self, user_id: str) -> WorkflowResult[User]:
        if user_id == self._user_id:
            return invalid_state("You cannot remove your own account.")
        staff = self.store.users.get(user_id)
        if staff is None or staff.role not in STAFF_ROLES:
            return not_found(f"Staff member {user_id} not found.")
        try:
            removed = self.store.users.remove(user_id)
        except StoreError as exc:
            return not_found(str(exc))
        failed = self.workflow.commit("remove_staff")
        if failed is not None:
            return failed
        logger.info("Staff %s removed by %s", user_id, self._user_id)
        return WorkflowResult.success(removed)

    # Appointments
    def all_appointments(self, status: AppointmentStatus | None = None) -> list[Appointment]:
        appointments = (
            self.store.appointments.filter(status=status) if status is not None
            else self.store.appointments.all()
        )
        return sorted(appointments, key=lambda a: a.appointment_id)

    # Inventory
    def inventory(self) -> list[Medication]:
        return self.store.medications.all()

    def add_medication(
        self, name: str, stock_level: int, low_stock_alert_level: int, medication_id: str | None = None
    ) -> WorkflowResult[Medication]:
        return self.workflow.add_medication(name, stock_level, low_stock_alert_level, medication_id)

    def update_medication(self, medication_id: str, name: str) -> WorkflowResult[Medication]:
        return self.workflow.update_medication(medication_id, name)

    def remove_medication(self, medication_id: str) -> WorkflowResult[Medication]:
        return self.workflow.remove_medication(medication_id)

    def adjust_stock(self, medication_id: str, new_level: int) -> WorkflowResult[Medication]:
        return self.workflow.adjust_stock(medication_id, new_level)

    def set_low_stock_alert(self, medication_id: str, level: int) -> WorkflowResult[Medication]:
        return self.workflow.set_low_stock_alert(medication_id, level)

    def pending_requests(self) -> list[Request]:
        return self.workflow.pending_replenishment_requests()

    def approve_request(self, request_id: str) -> WorkflowResult[Request]:
        return self.workflow.approve_request(request_id, self._user_id)


PORTALS = {
    UserRole.PATIENT: PatientPortal,
    UserRole.DOCTOR: DoctorPortal,
    UserRole.PHARMACIST: PharmacistPortal,
    UserRole.ADMINISTRATOR: AdministratorPortal,
}


def portal_for(workflow: ClinicWorkflow, user: User) -> _Portal:
    """The portal matching *user*'s role."""
    return PORTALS[user.role](workflow, user)
