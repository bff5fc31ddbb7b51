"""Medical record export and its access rule."""

import json

from workflow.export import export_json, export_pdf


def _user(workflow, user_id):
    return workflow.store.users.get(user_id)


class TestExportAccess:
    def test_patient_exports_own_record(self, workflow, completed):
        payload = json.loads(export_json(workflow, "P001", _user(workflow, "P001")))
        assert payload["patient"]["user_id"] == "P001"
        assert "password_hash" not in payload["patient"]
        assert payload["outcomes"][0]["consultation_notes"] == "Mild fever"
        assert payload["outcomes"][0]["prescriptions"][0]["medication_id"] == "M001"

    def test_patient_cannot_export_other(self, workflow, completed):
        assert export_json(workflow, "P001", _user(workflow, "P002")) is None

    def test_treating_doctor_may_export(self, workflow, completed):
        assert export_json(workflow, "P001", _user(workflow, "D001")) is not None

    def test_other_doctor_refused(self, workflow, completed):
        assert export_json(workflow, "P001", _user(workflow, "D002")) is None

    def test_pharmacist_refused(self, workflow, completed):
        assert export_json(workflow, "P001", _user(workflow, "PH001")) is None


class TestPdf:
    def test_pdf_bytes(self, workflow, completed):
        workflow.add_history("P001", "Fever & chills", "Rest <3 days>").unwrap()
        pdf = export_pdf(workflow, "P001", _user(workflow, "P001"))
        assert pdf.startswith(b"%PDF")

    def test_pdf_refused(self, workflow, completed):
        assert export_pdf(workflow, "P001", _user(workflow, "P002")) is None
