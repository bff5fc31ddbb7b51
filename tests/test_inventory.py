"""Medication stock, alerts and replenishment requests."""

import pytest

from storage.models import RequestStatus
from workflow.result import ErrorKind


class TestStockLevels:
    def test_adjust_stock(self, workflow):
        assert workflow.adjust_stock("M001", 42).unwrap().stock_level == 42
        assert workflow.store.medications.get("M001").stock_level == 42

    def test_negative_stock_rejected(self, workflow):
        result = workflow.adjust_stock("M001", -1)
        assert result.error.kind == ErrorKind.INVALID_ARGUMENT
        assert workflow.store.medications.get("M001").stock_level == 10

    def test_unknown_medication(self, workflow):
        assert workflow.adjust_stock("M404", 5).error.kind == ErrorKind.NOT_FOUND

    def test_not_found_wins_over_bad_level(self, workflow):
        assert workflow.adjust_stock("M404", -1).error.kind == ErrorKind.NOT_FOUND

    def test_low_stock_alert(self, workflow):
        assert [m.medication_id for m in workflow.low_stock_medications()] == ["M002"]
        workflow.set_low_stock_alert("M001", 11).unwrap()
        assert {m.medication_id for m in workflow.low_stock_medications()} == {"M001", "M002"}

    def test_negative_alert_rejected(self, workflow):
        assert workflow.set_low_stock_alert("M001", -3).error.kind == ErrorKind.INVALID_ARGUMENT


class TestReplenishment:
    def test_submit_creates_pending_request(self, workflow):
        request = workflow.submit_replenishment_request("M002", 20, "PH001").unwrap()
        assert request.status == RequestStatus.PENDING
        assert request.requested_at
        assert workflow.pending_replenishment_requests() == [request]

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_quantity_must_be_positive(self, workflow, quantity):
        result = workflow.submit_replenishment_request("M002", quantity, "PH001")
        assert result.error.kind == ErrorKind.INVALID_ARGUMENT

    def test_unknown_medication(self, workflow):
        assert workflow.submit_replenishment_request("M404", 5, "PH001").error.kind == ErrorKind.NOT_FOUND

    def test_approve_credits_stock_once(self, workflow):
        request = workflow.submit_replenishment_request("M002", 20, "PH001").unwrap()

        approved = workflow.approve_request(request.request_id, "AD001").unwrap()

        assert approved.status == RequestStatus.APPROVED
        assert approved.approved_by == "AD001"
        assert approved.approved_at
        assert workflow.store.medications.get("M002").stock_level == 23

        again = workflow.approve_request(request.request_id, "AD001")
        assert again.error.kind == ErrorKind.INVALID_STATE
        assert workflow.store.medications.get("M002").stock_level == 23

    def test_approve_unknown(self, workflow):
        assert workflow.approve_request("R404", "AD001").error.kind == ErrorKind.NOT_FOUND

    def test_approve_after_medication_removed(self, workflow):
        request = workflow.submit_replenishment_request("M002", 20, "PH001").unwrap()
        workflow.store.medications.remove("M002")
        assert workflow.approve_request(request.request_id, "AD001").error.kind == ErrorKind.NOT_FOUND
        assert workflow.store.requests.get(request.request_id).status == RequestStatus.PENDING


class TestMedicationCatalogue:
    def test_add_medication_generates_id(self, workflow):
        med = workflow.add_medication("Ibuprofen", 30, 10).unwrap()
        assert med.medication_id == "M003"

    def test_add_duplicate_id_rejected(self, workflow):
        assert workflow.add_medication("Other", 1, 1, medication_id="M001").error.kind == ErrorKind.INVALID_ARGUMENT

    def test_add_blank_name_rejected(self, workflow):
        assert workflow.add_medication(" ", 1, 1).error.kind == ErrorKind.INVALID_ARGUMENT

    def test_update_medication_name(self, workflow):
        assert workflow.update_medication("M001", "Acetaminophen").unwrap().name == "Acetaminophen"

    def test_remove_unused_medication(self, workflow):
        workflow.remove_medication("M002").unwrap()
        assert workflow.store.medications.get("M002") is None

    def test_remove_with_pending_prescription_refused(self, workflow, completed):
        result = workflow.remove_medication("M001")
        assert result.error.kind == ErrorKind.INVALID_STATE
        assert workflow.store.medications.get("M001") is not None

    def test_remove_with_pending_request_refused(self, workflow):
        workflow.submit_replenishment_request("M002", 5, "PH001").unwrap()
        assert workflow.remove_medication("M002").error.kind == ErrorKind.INVALID_STATE
