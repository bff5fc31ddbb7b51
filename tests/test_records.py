"""Medical history entries and the assembled medical record."""

import datetime as dt

from workflow.result import ErrorKind


class TestHistory:
    def test_add_history_defaults_to_today(self, workflow):
        entry = workflow.add_history("P001", "Hypertension", "Amlodipine").unwrap()
        assert entry.diagnosis_date == dt.date(2025, 3, 3)
        assert workflow.patient_history("P001") == [entry]

    def test_add_history_for_non_patient(self, workflow):
        assert workflow.add_history("D001", "Flu").error.kind == ErrorKind.NOT_FOUND

    def test_blank_diagnosis_rejected(self, workflow):
        assert workflow.add_history("P001", "").error.kind == ErrorKind.INVALID_ARGUMENT

    def test_update_keeps_blank_fields(self, workflow):
        entry = workflow.add_history("P001", "Hypertension", "Amlodipine").unwrap()
        updated = workflow.update_history(entry.history_id, treatment="Lisinopril").unwrap()
        assert updated.diagnosis == "Hypertension"
        assert updated.treatment == "Lisinopril"

    def test_update_with_nothing_rejected(self, workflow):
        entry = workflow.add_history("P001", "Hypertension").unwrap()
        assert workflow.update_history(entry.history_id, " ", None).error.kind == ErrorKind.INVALID_ARGUMENT

    def test_update_unknown(self, workflow):
        assert workflow.update_history("H404", "x").error.kind == ErrorKind.NOT_FOUND

    def test_history_sorted_by_date(self, workflow):
        workflow.add_history("P001", "Later", on_date=dt.date(2024, 6, 1)).unwrap()
        workflow.add_history("P001", "Earlier", on_date=dt.date(2023, 1, 1)).unwrap()
        assert [h.diagnosis for h in workflow.patient_history("P001")] == ["Earlier", "Later"]


class TestMedicalRecord:
    def test_record_contains_profile_history_and_outcomes(self, workflow, completed):
        workflow.add_history("P001", "Fever", "Rest").unwrap()
        record = workflow.medical_record("P001").unwrap()
        assert record.patient.blood_type == "A+"
        assert [h.diagnosis for h in record.history] == ["Fever"]
        assert [v.outcome.outcome_id for v in record.outcomes] == [completed.outcome_id]

    def test_record_for_unknown_patient(self, workflow):
        assert workflow.medical_record("P404").error.kind == ErrorKind.NOT_FOUND

    def test_history_encrypted_on_disk(self, workflow):
        workflow.add_history("P001", "Hypertension", "Amlodipine").unwrap()
        workflow.store.save()
        raw = (workflow.store.data_dir / "history.csv").read_text(encoding="utf-8")
        assert "Hypertension" not in raw
        assert "Amlodipine" not in raw
