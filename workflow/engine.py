"""
workflow/engine.py

Clinic workflow engine for MedCore HMS.

Owns the status state machines for slots, appointments, prescriptions and
replenishment requests, and keeps them consistent with each other:

    Slot       AVAILABLE -> PENDING -> BOOKED -> COMPLETED
                                  \\-> released (REMOVED or AVAILABLE, by policy)
    Appointment REQUESTED -> CONFIRMED -> COMPLETED
                        \\-> CANCELLED <-/
    Prescription PENDING -> DISPENSED
    Request      PENDING -> APPROVED

Every mutating operation checks all of its preconditions first and only then
writes to the store, so a failed call leaves nothing half-updated.  A write
that fails on disk is rolled back in memory too.  Failures are returned as
``WorkflowResult`` values (see workflow.result), never raised.
"""

from __future__ import annotations

import datetime as dt
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from pydantic import BaseModel

from storage.csv_store import LIST_SEPARATOR, ClinicStore, StoreWriteError
from storage.models import (
    Appointment,
    AppointmentStatus,
    HistoryEntry,
    MedicalRecord,
    Medication,
    Outcome,
    OutcomeView,
    Patient,
    Prescription,
    PrescriptionStatus,
    Request,
    RequestStatus,
    Slot,
    SlotStatus,
    User,
    UserRole,
)
from storage.settings import SlotReleasePolicy
from workflow.ordering import bookable, slot_time_key, sort_for_display
from workflow.result import (
    WorkflowResult,
    invalid_argument,
    invalid_state,
    not_found,
    storage_error,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(tz=timezone.utc).isoformat()


def _blank(text: str | None) -> bool:
    return text is None or not text.strip()


class PrescriptionOrder(BaseModel):
    """A medication a doctor orders while recording an outcome."""
    medication_id: str
    quantity: int
    notes: str = ""


class ClinicWorkflow:
    """
    The workflow engine over one :class:`ClinicStore`.

    Args:
        store:          The clinic's entity store (injected, not global).
        release_policy: What a slot becomes when its appointment is declined,
                        cancelled or moved elsewhere.
        today:          Date source for outcome and history records.
    """

    def __init__(
        self,
        store: ClinicStore,
        *,
        release_policy: SlotReleasePolicy = SlotReleasePolicy.REMOVED,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._store = store
        self.release_policy = release_policy
        self._today = today

    @property
    def store(self) -> ClinicStore:
        return self._store

    def _user(self, user_id: str, role: UserRole) -> User | None:
        user = self._store.users.get(user_id)
        if user is None or user.role != role:
            return None
        return user

    def _refuse(self, result: WorkflowResult, operation: str) -> WorkflowResult:
        logger.warning("%s refused (%s): %s", operation, result.error.kind.value, result.error.message)
        return result

    def commit(self, operation: str) -> WorkflowResult | None:
        """Persist the store; on a failed write the change is rolled back and returned as a failure."""
        try:
            self._store.commit()
        except StoreWriteError as exc:
            logger.error("%s not saved: %s", operation, exc)
            return storage_error(str(exc))
        return None

    def _slot_time(self, appointment: Appointment) -> tuple[dt.date, dt.time]:
        slot = self._store.slots.get(appointment.slot_id)
        if slot is None:
            return (dt.date.max, dt.time.max)
        return slot_time_key(slot)

    def _by_slot_time(self, appointments: Iterable[Appointment]) -> list[Appointment]:
        return sorted(appointments, key=self._slot_time)

    # -------------------------------------------------------------------------
    # Slots
    # -------------------------------------------------------------------------

    def create_slot(
        self,
        doctor_id: str,
        date: dt.date,
        start_time: dt.time,
        end_time: dt.time,
    ) -> WorkflowResult[Slot]:
        """Open a new AVAILABLE slot in a doctor's schedule."""
        op = "create_slot"
        if self._user(doctor_id, UserRole.DOCTOR) is None:
            return self._refuse(not_found(f"Doctor {doctor_id} not found."), op)
        if end_time <= start_time:
            return self._refuse(invalid_argument("End time must be after start time."), op)

        slot = Slot(
            slot_id=self._store.slots.next_id(),
            doctor_id=doctor_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
        )
        for other in self._store.slots.filter(doctor_id=doctor_id):
            if other.status != SlotStatus.REMOVED and slot.overlaps(other):
                return self._refuse(
                    invalid_argument(f"Slot overlaps {other.slot_id} on {other.date}."), op
                )

        self._store.slots.add(slot)
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Slot %s opened for doctor %s on %s %s", slot.slot_id, doctor_id, date, start_time)
        return WorkflowResult.success(slot)

    def remove_slot(self, slot_id: str, doctor_id: str | None = None) -> WorkflowResult[Slot]:
        """Soft-delete an AVAILABLE slot."""
        op = "remove_slot"
        slot = self._store.slots.get(slot_id)
        if slot is None or (doctor_id is not None and slot.doctor_id != doctor_id):
            return self._refuse(not_found(f"Slot {slot_id} not found."), op)
        if slot.status != SlotStatus.AVAILABLE:
            return self._refuse(
                invalid_state(f"Slot {slot_id} is {slot.status.value}; only AVAILABLE slots can be removed."), op
            )

        removed = self._store.slots.update(slot.model_copy(update={"status": SlotStatus.REMOVED}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Slot %s removed", slot_id)
        return WorkflowResult.success(removed)

    def available_slots(self, doctor_id: str, on_date: dt.date | None = None) -> list[Slot]:
        """Slots a patient may book with *doctor_id*, earliest first."""
        return bookable(self._store.slots.filter(doctor_id=doctor_id), on_date)

    def doctor_schedule(self, doctor_id: str) -> list[Slot]:
        """All of a doctor's slots in display order."""
        return sort_for_display(self._store.slots.filter(doctor_id=doctor_id))

    # -------------------------------------------------------------------------
    # Appointments
    # -------------------------------------------------------------------------

    def request_appointment(self, patient_id: str, doctor_id: str, slot_id: str) -> WorkflowResult[Appointment]:
        """Book an AVAILABLE slot: Appointment REQUESTED, slot PENDING."""
        op = "request_appointment"
        if self._user(patient_id, UserRole.PATIENT) is None:
            return self._refuse(not_found(f"Patient {patient_id} not found."), op)
        if self._user(doctor_id, UserRole.DOCTOR) is None:
            return self._refuse(not_found(f"Doctor {doctor_id} not found."), op)
        slot = self._store.slots.get(slot_id)
        if slot is None:
            return self._refuse(not_found(f"Slot {slot_id} not found."), op)
        if slot.doctor_id != doctor_id:
            return self._refuse(invalid_argument(f"Slot {slot_id} does not belong to doctor {doctor_id}."), op)
        if slot.status != SlotStatus.AVAILABLE:
            return self._refuse(invalid_state(f"Slot {slot_id} is {slot.status.value}, not AVAILABLE."), op)

        appointment = Appointment(
            appointment_id=self._store.appointments.next_id(),
            patient_id=patient_id,
            doctor_id=doctor_id,
            slot_id=slot_id,
            status=AppointmentStatus.REQUESTED,
        )
        self._store.appointments.add(appointment)
        self._store.slots.update(slot.model_copy(update={"status": SlotStatus.PENDING}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info(
            "Appointment %s requested by %s with %s (slot %s)",
            appointment.appointment_id, patient_id, doctor_id, slot_id,
        )
        return WorkflowResult.success(appointment)

    def decide_appointment(self, appointment_id: str, accept: bool) -> WorkflowResult[Appointment]:
        """Doctor's decision on a REQUESTED appointment."""
        op = "decide_appointment"
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None:
            return self._refuse(not_found(f"Appointment {appointment_id} not found."), op)
        if appointment.status != AppointmentStatus.REQUESTED:
            return self._refuse(
                invalid_state(f"Appointment {appointment_id} is {appointment.status.value}, not REQUESTED."), op
            )
        slot = self._store.slots.get(appointment.slot_id)
        if slot is None:
            return self._refuse(not_found(f"Slot {appointment.slot_id} not found."), op)
        if slot.status != SlotStatus.PENDING:
            return self._refuse(
                invalid_state(f"Slot {slot.slot_id} is {slot.status.value}, not PENDING."), op
            )

        if accept:
            slot_status, status = SlotStatus.BOOKED, AppointmentStatus.CONFIRMED
        else:
            slot_status, status = self.release_policy.released_status, AppointmentStatus.CANCELLED

        self._store.slots.update(slot.model_copy(update={"status": slot_status}))
        decided = self._store.appointments.update(appointment.model_copy(update={"status": status}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Appointment %s %s (slot %s -> %s)", appointment_id, status.value, slot.slot_id, slot_status.value)
        return WorkflowResult.success(decided)

    def complete_appointment(
        self,
        appointment_id: str,
        service_provided: str,
        prescription_ref: str | None = None,
        notes: str = "",
        prescriptions: Sequence[PrescriptionOrder] = (),
    ) -> WorkflowResult[Outcome]:
        """
        Record the outcome of a CONFIRMED appointment.

        Creates exactly one Outcome and any ordered prescriptions (PENDING),
        marks the slot and the appointment COMPLETED and links the outcome
        back from the appointment.  The outcome lists the appointment's
        existing prescriptions, the new ones and *prescription_ref*.
        """
        op = "complete_appointment"
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None:
            return self._refuse(not_found(f"Appointment {appointment_id} not found."), op)
        if appointment.status != AppointmentStatus.CONFIRMED:
            return self._refuse(
                invalid_state(f"Appointment {appointment_id} is {appointment.status.value}, not CONFIRMED."), op
            )
        if _blank(service_provided):
            return self._refuse(invalid_argument("Service provided cannot be empty."), op)
        if prescription_ref and LIST_SEPARATOR in prescription_ref:
            return self._refuse(
                invalid_argument(f"Prescription reference cannot contain '{LIST_SEPARATOR}'."), op
            )
        slot = self._store.slots.get(appointment.slot_id)
        if slot is None:
            return self._refuse(not_found(f"Slot {appointment.slot_id} not found."), op)
        for order in prescriptions:
            if self._store.medications.get(order.medication_id) is None:
                return self._refuse(not_found(f"Medication {order.medication_id} not found."), op)
            if order.quantity <= 0:
                return self._refuse(invalid_argument("Prescription quantity must be positive."), op)

        refs = [p.prescription_id for p in self._store.prescriptions.filter(appointment_id=appointment_id)]
        for order in prescriptions:
            rx = Prescription(
                prescription_id=self._store.prescriptions.next_id(),
                appointment_id=appointment_id,
                medication_id=order.medication_id,
                quantity=order.quantity,
                notes=order.notes,
            )
            self._store.prescriptions.add(rx)
            refs.append(rx.prescription_id)
        if not _blank(prescription_ref) and prescription_ref.strip() not in refs:
            refs.append(prescription_ref.strip())

        outcome = Outcome(
            outcome_id=self._store.outcomes.next_id(),
            appointment_id=appointment_id,
            service_provided=service_provided.strip(),
            prescription_ids=refs,
            consultation_notes=notes or "",
            recorded_on=self._today(),
        )
        self._store.outcomes.add(outcome)
        self._store.slots.update(slot.model_copy(update={"status": SlotStatus.COMPLETED}))
        self._store.appointments.update(
            appointment.model_copy(
                update={"status": AppointmentStatus.COMPLETED, "outcome_id": outcome.outcome_id}
            )
        )
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Appointment %s completed with outcome %s", appointment_id, outcome.outcome_id)
        return WorkflowResult.success(outcome)

    def cancel_appointment(self, appointment_id: str) -> WorkflowResult[Appointment]:
        """Cancel a REQUESTED or CONFIRMED appointment and release its slot."""
        op = "cancel_appointment"
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None:
            return self._refuse(not_found(f"Appointment {appointment_id} not found."), op)
        if not appointment.status.is_active:
            return self._refuse(
                invalid_state(f"Appointment {appointment_id} is {appointment.status.value} and cannot be cancelled."),
                op,
            )
        slot = self._store.slots.get(appointment.slot_id)
        if slot is None:
            return self._refuse(not_found(f"Slot {appointment.slot_id} not found."), op)

        released = self.release_policy.released_status
        self._store.slots.update(slot.model_copy(update={"status": released}))
        cancelled = self._store.appointments.update(
            appointment.model_copy(update={"status": AppointmentStatus.CANCELLED})
        )
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Appointment %s cancelled (slot %s -> %s)", appointment_id, slot.slot_id, released.value)
        return WorkflowResult.success(cancelled)

    def reschedule_appointment(self, appointment_id: str, new_slot_id: str) -> WorkflowResult[Appointment]:
        """
        Move an active appointment to another AVAILABLE slot of the same doctor.

        The old slot is released, the new one goes PENDING and the appointment
        returns to REQUESTED so the doctor confirms the new time.
        """
        op = "reschedule_appointment"
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None:
            return self._refuse(not_found(f"Appointment {appointment_id} not found."), op)
        if not appointment.status.is_active:
            return self._refuse(
                invalid_state(f"Appointment {appointment_id} is {appointment.status.value} and cannot be rescheduled."),
                op,
            )
        if new_slot_id == appointment.slot_id:
            return self._refuse(invalid_argument("The appointment is already in that slot."), op)
        new_slot = self._store.slots.get(new_slot_id)
        if new_slot is None:
            return self._refuse(not_found(f"Slot {new_slot_id} not found."), op)
        if new_slot.doctor_id != appointment.doctor_id:
            return self._refuse(
                invalid_argument(f"Slot {new_slot_id} belongs to a different doctor."), op
            )
        if new_slot.status != SlotStatus.AVAILABLE:
            return self._refuse(invalid_state(f"Slot {new_slot_id} is {new_slot.status.value}, not AVAILABLE."), op)
        old_slot = self._store.slots.get(appointment.slot_id)
        if old_slot is None:
            return self._refuse(not_found(f"Slot {appointment.slot_id} not found."), op)

        self._store.slots.update(old_slot.model_copy(update={"status": self.release_policy.released_status}))
        self._store.slots.update(new_slot.model_copy(update={"status": SlotStatus.PENDING}))
        moved = self._store.appointments.update(
            appointment.model_copy(update={"slot_id": new_slot_id, "status": AppointmentStatus.REQUESTED})
        )
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Appointment %s moved from slot %s to %s", appointment_id, old_slot.slot_id, new_slot_id)
        return WorkflowResult.success(moved)

    def slot_for(self, appointment: Appointment) -> Slot | None:
        return self._store.slots.get(appointment.slot_id)

    def appointments_for_doctor(
        self, doctor_id: str, statuses: Iterable[AppointmentStatus] | None = None
    ) -> list[Appointment]:
        wanted = set(statuses) if statuses is not None else None
        return self._by_slot_time(
            a for a in self._store.appointments.filter(doctor_id=doctor_id)
            if wanted is None or a.status in wanted
        )

    def appointments_for_patient(
        self, patient_id: str, statuses: Iterable[AppointmentStatus] | None = None
    ) -> list[Appointment]:
        wanted = set(statuses) if statuses is not None else None
        return self._by_slot_time(
            a for a in self._store.appointments.filter(patient_id=patient_id)
            if wanted is None or a.status in wanted
        )

    def pending_requests(self, doctor_id: str) -> list[Appointment]:
        return self.appointments_for_doctor(doctor_id, [AppointmentStatus.REQUESTED])

    def upcoming_appointments(self, doctor_id: str) -> list[Appointment]:
        return self.appointments_for_doctor(doctor_id, [AppointmentStatus.CONFIRMED])

    def scheduled_appointments(self, patient_id: str) -> list[Appointment]:
        return self.appointments_for_patient(
            patient_id, [AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED]
        )

    def past_appointments(self, patient_id: str) -> list[Appointment]:
        return self.appointments_for_patient(
            patient_id, [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED]
        )

    def patients_under_care(self, doctor_id: str) -> list[Patient]:
        """Distinct patients with a confirmed or completed appointment with the doctor."""
        seen: list[str] = []
        for a in self.appointments_for_doctor(
            doctor_id, [AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED]
        ):
            if a.patient_id not in seen:
                seen.append(a.patient_id)
        patients = []
        for patient_id in seen:
            user = self._user(patient_id, UserRole.PATIENT)
            if user is not None:
                patients.append(user.as_patient())
        return patients

    def is_under_care(self, doctor_id: str, patient_id: str) -> bool:
        return any(p.user_id == patient_id for p in self.patients_under_care(doctor_id))

    # -------------------------------------------------------------------------
    # Prescriptions & outcomes
    # -------------------------------------------------------------------------

    def add_prescription(
        self,
        appointment_id: str,
        medication_id: str,
        quantity: int,
        notes: str = "",
    ) -> WorkflowResult[Prescription]:
        """Order a medication (PENDING) for a confirmed or completed appointment."""
        op = "add_prescription"
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None:
            return self._refuse(not_found(f"Appointment {appointment_id} not found."), op)
        if appointment.status not in (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED):
            return self._refuse(
                invalid_state(f"Appointment {appointment_id} is {appointment.status.value}; cannot prescribe."), op
            )
        if self._store.medications.get(medication_id) is None:
            return self._refuse(not_found(f"Medication {medication_id} not found."), op)
        if quantity <= 0:
            return self._refuse(invalid_argument("Prescription quantity must be positive."), op)
        outcome = self._store.outcomes.get(appointment.outcome_id) if appointment.outcome_id else None

        rx = Prescription(
            prescription_id=self._store.prescriptions.next_id(),
            appointment_id=appointment_id,
            medication_id=medication_id,
            quantity=quantity,
            notes=notes or "",
        )
        self._store.prescriptions.add(rx)
        if outcome is not None:
            self._store.outcomes.update(
                outcome.model_copy(update={"prescription_ids": [*outcome.prescription_ids, rx.prescription_id]})
            )
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Prescription %s added to appointment %s", rx.prescription_id, appointment_id)
        return WorkflowResult.success(rx)

    def dispense(self, prescription_id: str) -> WorkflowResult[Prescription]:
        """Hand out a PENDING prescription, taking its quantity from stock."""
        op = "dispense"
        rx = self._store.prescriptions.get(prescription_id)
        if rx is None:
            return self._refuse(not_found(f"Prescription {prescription_id} not found."), op)
        if rx.status == PrescriptionStatus.DISPENSED:
            return self._refuse(invalid_state(f"Prescription {prescription_id} is already dispensed."), op)
        medication = self._store.medications.get(rx.medication_id)
        if medication is None:
            return self._refuse(not_found(f"Medication {rx.medication_id} not found."), op)
        if medication.stock_level < rx.quantity:
            return self._refuse(
                invalid_state(
                    f"Insufficient stock of {medication.name}: {medication.stock_level} on hand, "
                    f"{rx.quantity} prescribed."
                ),
                op,
            )

        self._store.medications.update(
            medication.model_copy(update={"stock_level": medication.stock_level - rx.quantity})
        )
        dispensed = self._store.prescriptions.update(rx.model_copy(update={"status": PrescriptionStatus.DISPENSED}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Prescription %s dispensed (%s -%d)", prescription_id, medication.medication_id, rx.quantity)
        return WorkflowResult.success(dispensed)

    def outcome_for_appointment(self, appointment_id: str) -> Outcome | None:
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None or not appointment.outcome_id:
            return None
        return self._store.outcomes.get(appointment.outcome_id)

    def prescriptions_for_appointment(self, appointment_id: str) -> list[Prescription]:
        return self._store.prescriptions.filter(appointment_id=appointment_id)

    def pending_prescriptions(self) -> list[Prescription]:
        return self._store.prescriptions.filter(status=PrescriptionStatus.PENDING)

    def outcome_views(self, patient_id: str | None = None) -> list[OutcomeView]:
        """Outcomes joined with appointment, date and prescriptions, newest first."""
        views = []
        for outcome in self._store.outcomes:
            appointment = self._store.appointments.get(outcome.appointment_id)
            if appointment is None:
                continue
            if patient_id is not None and appointment.patient_id != patient_id:
                continue
            slot = self._store.slots.get(appointment.slot_id)
            views.append(
                OutcomeView(
                    outcome=outcome,
                    appointment=appointment,
                    appointment_date=slot.date if slot is not None else outcome.recorded_on,
                    prescriptions=self.prescriptions_for_appointment(appointment.appointment_id),
                )
            )
        views.sort(key=lambda v: v.appointment_date or dt.date.min, reverse=True)
        return views

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    def add_medication(
        self,
        name: str,
        stock_level: int,
        low_stock_alert_level: int,
        medication_id: str | None = None,
    ) -> WorkflowResult[Medication]:
        op = "add_medication"
        if _blank(name):
            return self._refuse(invalid_argument("Medication name cannot be empty."), op)
        if stock_level < 0 or low_stock_alert_level < 0:
            return self._refuse(invalid_argument("Stock and alert levels cannot be negative."), op)
        medication_id = (medication_id or "").strip() or self._store.medications.next_id()
        if self._store.medications.get(medication_id) is not None:
            return self._refuse(invalid_argument(f"Medication {medication_id} already exists."), op)

        medication = Medication(
            medication_id=medication_id,
            name=name.strip(),
            stock_level=stock_level,
            low_stock_alert_level=low_stock_alert_level,
        )
        self._store.medications.add(medication)
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Medication %s (%s) added", medication_id, medication.name)
        return WorkflowResult.success(medication)

    def update_medication(self, medication_id: str, name: str) -> WorkflowResult[Medication]:
        op = "update_medication"
        medication = self._store.medications.get(medication_id)
        if medication is None:
            return self._refuse(not_found(f"Medication {medication_id} not found."), op)
        if _blank(name):
            return self._refuse(invalid_argument("Medication name cannot be empty."), op)

        renamed = self._store.medications.update(medication.model_copy(update={"name": name.strip()}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        return WorkflowResult.success(renamed)

    def remove_medication(self, medication_id: str) -> WorkflowResult[Medication]:
        """Delete a medication nothing pending still refers to."""
        op = "remove_medication"
        if self._store.medications.get(medication_id) is None:
            return self._refuse(not_found(f"Medication {medication_id} not found."), op)
        if self._store.prescriptions.filter(medication_id=medication_id, status=PrescriptionStatus.PENDING):
            return self._refuse(invalid_state(f"Medication {medication_id} has pending prescriptions."), op)
        if self._store.requests.filter(medication_id=medication_id, status=RequestStatus.PENDING):
            return self._refuse(invalid_state(f"Medication {medication_id} has pending replenishment requests."), op)

        removed = self._store.medications.remove(medication_id)
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Medication %s removed", medication_id)
        return WorkflowResult.success(removed)

    def adjust_stock(self, medication_id: str, new_level: int) -> WorkflowResult[Medication]:
        """Set a medication's stock level outright."""
        op = "adjust_stock"
        medication = self._store.medications.get(medication_id)
        if medication is None:
            return self._refuse(not_found(f"Medication {medication_id} not found."), op)
        if new_level < 0:
            return self._refuse(invalid_argument("Stock level cannot be negative."), op)

        adjusted = self._store.medications.update(medication.model_copy(update={"stock_level": new_level}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Stock of %s set to %d", medication_id, new_level)
        return WorkflowResult.success(adjusted)

    def set_low_stock_alert(self, medication_id: str, level: int) -> WorkflowResult[Medication]:
        op = "set_low_stock_alert"
        medication = self._store.medications.get(medication_id)
        if medication is None:
            return self._refuse(not_found(f"Medication {medication_id} not found."), op)
        if level < 0:
            return self._refuse(invalid_argument("Low stock alert level cannot be negative."), op)

        updated = self._store.medications.update(medication.model_copy(update={"low_stock_alert_level": level}))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Low stock alert of %s set to %d", medication_id, level)
        return WorkflowResult.success(updated)

    def low_stock_medications(self) -> list[Medication]:
        return [m for m in self._store.medications if m.is_low_stock]

    def submit_replenishment_request(
        self, medication_id: str, quantity: int, requested_by: str
    ) -> WorkflowResult[Request]:
        op = "submit_replenishment_request"
        if self._store.medications.get(medication_id) is None:
            return self._refuse(not_found(f"Medication {medication_id} not found."), op)
        if quantity <= 0:
            return self._refuse(invalid_argument("Requested quantity must be positive."), op)
        if self._store.users.get(requested_by) is None:
            return self._refuse(not_found(f"User {requested_by} not found."), op)

        request = Request(
            request_id=self._store.requests.next_id(),
            medication_id=medication_id,
            quantity=quantity,
            requested_by=requested_by,
            requested_at=_now(),
        )
        self._store.requests.add(request)
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Replenishment %s: %d x %s by %s", request.request_id, quantity, medication_id, requested_by)
        return WorkflowResult.success(request)

    def approve_request(self, request_id: str, approved_by: str) -> WorkflowResult[Request]:
        """Credit a PENDING request's quantity to stock; at most once per request."""
        op = "approve_request"
        request = self._store.requests.get(request_id)
        if request is None:
            return self._refuse(not_found(f"Request {request_id} not found."), op)
        if request.status != RequestStatus.PENDING:
            return self._refuse(invalid_state(f"Request {request_id} is already {request.status.value}."), op)
        medication = self._store.medications.get(request.medication_id)
        if medication is None:
            return self._refuse(not_found(f"Medication {request.medication_id} not found."), op)

        self._store.medications.update(
            medication.model_copy(update={"stock_level": medication.stock_level + request.quantity})
        )
        approved = self._store.requests.update(
            request.model_copy(
                update={"status": RequestStatus.APPROVED, "approved_by": approved_by, "approved_at": _now()}
            )
        )
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("Request %s approved by %s (+%d %s)", request_id, approved_by, request.quantity, medication.medication_id)
        return WorkflowResult.success(approved)

    def pending_replenishment_requests(self) -> list[Request]:
        return self._store.requests.filter(status=RequestStatus.PENDING)

    # -------------------------------------------------------------------------
    # Medical records
    # -------------------------------------------------------------------------

    def add_history(
        self,
        patient_id: str,
        diagnosis: str,
        treatment: str = "",
        on_date: dt.date | None = None,
    ) -> WorkflowResult[HistoryEntry]:
        op = "add_history"
        if self._user(patient_id, UserRole.PATIENT) is None:
            return self._refuse(not_found(f"Patient {patient_id} not found."), op)
        if _blank(diagnosis):
            return self._refuse(invalid_argument("Diagnosis cannot be empty."), op)

        entry = HistoryEntry(
            history_id=self._store.history.next_id(),
            patient_id=patient_id,
            diagnosis_date=on_date or self._today(),
            diagnosis=diagnosis.strip(),
            treatment=(treatment or "").strip(),
        )
        self._store.history.add(entry)
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("History %s added for patient %s", entry.history_id, patient_id)
        return WorkflowResult.success(entry)

    def update_history(
        self,
        history_id: str,
        diagnosis: str | None = None,
        treatment: str | None = None,
    ) -> WorkflowResult[HistoryEntry]:
        """Change a history entry; blank fields keep their current value."""
        op = "update_history"
        entry = self._store.history.get(history_id)
        if entry is None:
            return self._refuse(not_found(f"History entry {history_id} not found."), op)
        changes = {}
        if not _blank(diagnosis):
            changes["diagnosis"] = diagnosis.strip()
        if not _blank(treatment):
            changes["treatment"] = treatment.strip()
        if not changes:
            return self._refuse(invalid_argument("Nothing to update."), op)

        updated = self._store.history.update(entry.model_copy(update=changes))
        failed = self.commit(op)
        if failed is not None:
            return failed
        logger.info("History %s updated (%s)", history_id, ", ".join(changes))
        return WorkflowResult.success(updated)

    def patient_history(self, patient_id: str) -> list[HistoryEntry]:
        return sorted(self._store.history.filter(patient_id=patient_id), key=lambda h: h.diagnosis_date)

    def medical_record(self, patient_id: str) -> WorkflowResult[MedicalRecord]:
        user = self._user(patient_id, UserRole.PATIENT)
        if user is None:
            return not_found(f"Patient {patient_id} not found.")
        return WorkflowResult.success(
            MedicalRecord(
                patient=user.as_patient(),
                history=self.patient_history(patient_id),
                outcomes=self.outcome_views(patient_id),
            )
        )
