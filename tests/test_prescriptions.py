"""Prescriptions: ordering, dispensing and the outcome views."""

from storage.models import PrescriptionStatus
from workflow.result import ErrorKind


class TestAddPrescription:
    def test_added_to_completed_appointment_outcome(self, workflow, completed):
        rx = workflow.add_prescription(completed.appointment_id, "M002", 2, "after meals").unwrap()
        assert rx.status == PrescriptionStatus.PENDING
        outcome = workflow.outcome_for_appointment(completed.appointment_id)
        assert outcome.prescription_ids[-1] == rx.prescription_id

    def test_confirmed_appointment_without_outcome(self, workflow, confirmed):
        rx = workflow.add_prescription(confirmed.appointment_id, "M001", 1).unwrap()
        assert workflow.outcome_for_appointment(confirmed.appointment_id) is None

        outcome = workflow.complete_appointment(confirmed.appointment_id, "Consultation").unwrap()
        assert outcome.prescription_ids == [rx.prescription_id]

    def test_requested_appointment_rejected(self, workflow):
        appt = workflow.request_appointment("P001", "D001", "S1").unwrap()
        assert workflow.add_prescription(appt.appointment_id, "M001", 1).error.kind == ErrorKind.INVALID_STATE

    def test_unknown_medication(self, workflow, confirmed):
        assert workflow.add_prescription(confirmed.appointment_id, "M404", 1).error.kind == ErrorKind.NOT_FOUND

    def test_quantity_must_be_positive(self, workflow, confirmed):
        result = workflow.add_prescription(confirmed.appointment_id, "M001", 0)
        assert result.error.kind == ErrorKind.INVALID_ARGUMENT
        assert len(workflow.store.prescriptions) == 0


class TestDispense:
    def test_dispense_takes_exact_quantity(self, workflow, completed):
        rx = workflow.prescriptions_for_appointment(completed.appointment_id)[0]
        before = workflow.store.medications.get("M001").stock_level

        dispensed = workflow.dispense(rx.prescription_id).unwrap()

        assert dispensed.status == PrescriptionStatus.DISPENSED
        assert workflow.store.medications.get("M001").stock_level == before - rx.quantity

    def test_redispense_fails_and_keeps_stock(self, workflow, completed):
        rx = workflow.prescriptions_for_appointment(completed.appointment_id)[0]
        workflow.dispense(rx.prescription_id).unwrap()
        stock = workflow.store.medications.get("M001").stock_level

        result = workflow.dispense(rx.prescription_id)

        assert result.error.kind == ErrorKind.INVALID_STATE
        assert "already dispensed" in result.error.message
        assert workflow.store.medications.get("M001").stock_level == stock

    def test_insufficient_stock_refused(self, workflow, completed):
        rx = workflow.add_prescription(completed.appointment_id, "M002", 5).unwrap()

        result = workflow.dispense(rx.prescription_id)

        assert result.error.kind == ErrorKind.INVALID_STATE
        assert "Insufficient stock" in result.error.message
        assert workflow.store.medications.get("M002").stock_level == 3
        assert workflow.store.prescriptions.get(rx.prescription_id).status == PrescriptionStatus.PENDING

    def test_unknown_prescription(self, workflow):
        assert workflow.dispense("RX404").error.kind == ErrorKind.NOT_FOUND

    def test_pending_list_shrinks(self, workflow, completed):
        pending = workflow.pending_prescriptions()
        assert len(pending) == 1
        workflow.dispense(pending[0].prescription_id).unwrap()
        assert workflow.pending_prescriptions() == []


class TestOutcomeViews:
    def test_views_join_appointment_and_prescriptions(self, workflow, completed):
        (view,) = workflow.outcome_views("P001")
        assert view.appointment.appointment_id == completed.appointment_id
        assert view.appointment_date == workflow.store.slots.get("S1").date
        assert [p.medication_id for p in view.prescriptions] == ["M001"]

    def test_views_filtered_by_patient(self, workflow, completed):
        assert workflow.outcome_views("P002") == []
        assert len(workflow.outcome_views()) == 1
