"""CSV persistence: round trips, id generation, encryption and bad rows."""

import csv
import logging

import pytest
from cryptography.fernet import Fernet, InvalidToken

from storage.csv_store import ClinicStore, DuplicateIdError, EntityNotFoundError, StoreWriteError
from storage.models import Doctor, Medication, SlotStatus


class TestRepository:
    def test_get_unknown_returns_none(self, store):
        assert store.slots.get("S99") is None

    def test_filter_is_case_insensitive(self, store):
        assert {u.user_id for u in store.users.filter(role="doctor")} == {"D001", "D002"}

    def test_filter_accepts_enums(self, store):
        assert len(store.slots.filter(status=SlotStatus.AVAILABLE)) == 3

    def test_next_id_is_one_past_highest(self, store):
        assert store.slots.next_id() == "S004"
        assert store.appointments.next_id() == "A001"

    def test_duplicate_add_raises(self, store):
        with pytest.raises(DuplicateIdError):
            store.medications.add(Medication(medication_id="M001", name="X", stock_level=1, low_stock_alert_level=0))

    def test_update_unknown_raises(self, store):
        with pytest.raises(EntityNotFoundError):
            store.medications.update(Medication(medication_id="M404", name="X", stock_level=1, low_stock_alert_level=0))

    def test_remove_returns_entity(self, store):
        removed = store.medications.remove("M002")
        assert removed.name == "Amoxicillin"
        assert store.medications.get("M002") is None


class TestPersistence:
    def test_round_trip(self, store, completed, fernet):
        store.save()

        reloaded = ClinicStore(store.data_dir, fernet=fernet)
        reloaded.load()

        assert isinstance(reloaded.users.get("D001"), Doctor)
        assert reloaded.slots.get("S1").status == SlotStatus.COMPLETED
        outcome = reloaded.outcomes.get(completed.outcome_id)
        assert outcome.consultation_notes == "Mild fever"
        assert outcome.prescription_ids == store.outcomes.get(completed.outcome_id).prescription_ids
        assert reloaded.appointments.get(completed.appointment_id).outcome_id == completed.outcome_id

    def test_header_row_first(self, store):
        store.save()
        with (store.data_dir / "medications.csv").open(encoding="utf-8", newline="") as f:
            header = next(csv.reader(f))
        assert header == ["medication_id", "name", "stock_level", "low_stock_alert_level"]

    def test_clinical_notes_encrypted_at_rest(self, store, completed):
        store.save()
        raw = (store.data_dir / "outcomes.csv").read_text(encoding="utf-8")
        assert "Mild fever" not in raw

    def test_wrong_key_raises(self, store, completed):
        store.save()
        other = ClinicStore(store.data_dir, fernet=Fernet(Fernet.generate_key()))
        with pytest.raises(InvalidToken):
            other.load()

    def test_plain_store_keeps_text(self, tmp_path, store, completed):
        plain = ClinicStore(tmp_path / "plain")
        for entity in store.outcomes:
            plain.outcomes.add(entity)
        plain.save()
        assert "Mild fever" in (tmp_path / "plain" / "outcomes.csv").read_text(encoding="utf-8")

    def test_missing_files_load_empty(self, tmp_path):
        empty = ClinicStore(tmp_path / "nothing")
        empty.load()
        assert len(empty.users) == 0

    def test_invalid_and_duplicate_rows_skipped(self, tmp_path, caplog):
        path = tmp_path / "medications.csv"
        path.write_text(
            "medication_id,name,stock_level,low_stock_alert_level\n"
            "M001,Paracetamol,10,5\n"
            "M002,Broken,lots,5\n"
            "M001,Paracetamol again,1,1\n",
            encoding="utf-8",
        )
        s = ClinicStore(tmp_path)
        with caplog.at_level(logging.WARNING):
            assert s.medications.load() == 1
        assert s.medications.get("M001").name == "Paracetamol"
        assert "Skipping" in caplog.text

    def test_commit_saves_only_with_autosave(self, tmp_path):
        manual = ClinicStore(tmp_path / "manual")
        manual.commit()
        assert not (tmp_path / "manual" / "users.csv").exists()

        auto = ClinicStore(tmp_path / "auto", autosave=True)
        auto.commit()
        assert (tmp_path / "auto" / "users.csv").exists()


class TestAllOrNothingSave:
    """A tmp path that cannot be written (here: a directory) fails the whole save."""

    def test_failed_save_replaces_no_file(self, store, fernet):
        store.save()
        (store.data_dir / "appointments.tmp").mkdir()
        store.slots.update(store.slots.get("S1").model_copy(update={"status": SlotStatus.PENDING}))

        with pytest.raises(StoreWriteError):
            store.save()

        assert not (store.data_dir / "users.tmp").exists()
        assert not (store.data_dir / "slots.tmp").exists()
        reloaded = ClinicStore(store.data_dir, fernet=fernet)
        reloaded.load()
        assert reloaded.slots.get("S1").status == SlotStatus.AVAILABLE

    def test_failed_commit_rolls_memory_back(self, store):
        store.save()
        store.autosave = True
        (store.data_dir / "slots.tmp").mkdir()
        store.medications.remove("M002")
        store.slots.update(store.slots.get("S1").model_copy(update={"status": SlotStatus.PENDING}))

        with pytest.raises(StoreWriteError):
            store.commit()

        assert store.medications.get("M002") is not None
        assert store.slots.get("S1").status == SlotStatus.AVAILABLE

    def test_commit_after_recovery_persists(self, store, fernet):
        store.save()
        store.autosave = True
        blocker = store.data_dir / "history.tmp"
        blocker.mkdir()
        store.medications.remove("M002")
        with pytest.raises(StoreWriteError):
            store.commit()

        blocker.rmdir()
        store.medications.remove("M002")
        store.commit()
        reloaded = ClinicStore(store.data_dir, fernet=fernet)
        reloaded.load()
        assert reloaded.medications.get("M002") is None
        assert reloaded.medications.get("M001") is not None
