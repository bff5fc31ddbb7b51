"""
storage/csv_store.py

CSV-backed entity store for MedCore HMS.

- One ``Repository`` per entity type, holding an in-memory list
- ``load()`` / ``save()`` map each list to ``<data_dir>/<name>.csv``
  (header row first, one entity per row)
- All-or-nothing saves: every tmp file is written before any CSV is replaced
- Clinical free-text columns are Fernet-encrypted when a key is supplied

A ``ClinicStore`` owns all repositories.  It is created once and passed to
whoever needs it; there is no module-level singleton.
"""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, TypeVar

from cryptography.fernet import Fernet
from pydantic import BaseModel, ValidationError

from storage.crypto import KEY_FILE_NAME, decrypt_text, encrypt_text, get_fernet
from storage.models import (
    Appointment,
    HistoryEntry,
    Medication,
    Outcome,
    Prescription,
    Request,
    Slot,
    User,
    parse_user,
)
from storage.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

LIST_SEPARATOR = ";"
_ID_DIGITS = 3


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(ValueError):
    """Base class for store-level failures."""


class DuplicateIdError(StoreError):
    pass


class EntityNotFoundError(StoreError):
    pass


class StoreWriteError(StoreError):
    """The store could not be written to disk; nothing was replaced."""


# ---------------------------------------------------------------------------
# CSV helpers
# ---------------------------------------------------------------------------


def _write_tmp_csv(path: Path, columns: tuple[str, ...], rows: list[dict[str, str]]) -> Path:
    """Write *rows* next to *path* and return the tmp file; *path* is untouched."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(columns))
        writer.writeheader()
        writer.writerows(rows)
    return tmp


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return LIST_SEPARATOR.join(str(v) for v in value)
    return str(value)


def _matches(value: Any, expected: Any) -> bool:
    if hasattr(value, "value"):
        value = value.value
    if hasattr(expected, "value"):
        expected = expected.value
    return str(value).strip().lower() == str(expected).strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class Repository(Generic[T]):
    """
    An in-memory list of one entity type with CSV load/save hooks.

    Lookups are linear scans; the collections are small.  Mutators raise
    :class:`DuplicateIdError` / :class:`EntityNotFoundError`.
    """

    def __init__(
        self,
        name: str,
        path: Path,
        columns: tuple[str, ...],
        id_field: str,
        id_prefix: str,
        parse: Callable[[dict[str, Any]], T],
        *,
        list_fields: tuple[str, ...] = (),
        encrypted_fields: tuple[str, ...] = (),
        fernet: Fernet | None = None,
    ):
        self.name = name
        self.path = path
        self.columns = columns
        self.id_field = id_field
        self.id_prefix = id_prefix
        self._parse = parse
        self._list_fields = list_fields
        self._encrypted_fields = encrypted_fields if fernet is not None else ()
        self._fernet = fernet
        self._items: list[T] = []

    # -------------------------
    # Queries
    # -------------------------
    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def _id_of(self, entity: T) -> str:
        return getattr(entity, self.id_field)

    def all(self) -> list[T]:
        return list(self._items)

    def get(self, entity_id: str) -> T | None:
        for item in self._items:
            if self._id_of(item) == entity_id:
                return item
        return None

    def filter(self, **criteria: Any) -> list[T]:
        """Entities whose fields equal every criterion (case-insensitive)."""
        return [
            item
            for item in self._items
            if all(_matches(getattr(item, key, None), value) for key, value in criteria.items())
        ]

    def next_id(self, prefix: str | None = None) -> str:
        """Next free ``<prefix><number>`` id, one past the highest in use."""
        prefix = self.id_prefix if prefix is None else prefix
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
        highest = 0
        for item in self._items:
            m = pattern.match(self._id_of(item))
            if m:
                highest = max(highest, int(m.group(1)))
        return f"{prefix}{highest + 1:0{_ID_DIGITS}d}"

    # -------------------------
    # Mutators
    # -------------------------
    def add(self, entity: T) -> T:
        entity_id = self._id_of(entity)
        if self.get(entity_id) is not None:
            raise DuplicateIdError(f"{self.name}: ID {entity_id} already exists.")
        self._items.append(entity)
        return entity

    def update(self, entity: T) -> T:
        entity_id = self._id_of(entity)
        for i, item in enumerate(self._items):
            if self._id_of(item) == entity_id:
                self._items[i] = entity
                return entity
        raise EntityNotFoundError(f"{self.name}: ID {entity_id} not found.")

    def remove(self, entity_id: str) -> T:
        for i, item in enumerate(self._items):
            if self._id_of(item) == entity_id:
                return self._items.pop(i)
        raise EntityNotFoundError(f"{self.name}: ID {entity_id} not found.")

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> list[T]:
        return list(self._items)

    def restore(self, items: list[T]) -> None:
        self._items = list(items)

    # -------------------------
    # CSV mapping
    # -------------------------
    def _encode(self, entity: T) -> dict[str, str]:
        data = entity.model_dump(mode="json")
        row: dict[str, str] = {}
        for col in self.columns:
            cell = _cell(data.get(col))
            if cell and col in self._encrypted_fields:
                cell = encrypt_text(self._fernet, cell)
            row[col] = cell
        return row

    def _decode(self, row: dict[str, str | None]) -> T:
        data: dict[str, Any] = {}
        for col in self.columns:
            raw = (row.get(col) or "").strip()
            if not raw:
                continue
            if col in self._encrypted_fields:
                raw = decrypt_text(self._fernet, raw)
            if col in self._list_fields:
                data[col] = [p.strip() for p in raw.split(LIST_SEPARATOR) if p.strip()]
            else:
                data[col] = raw
        return self._parse(data)

    def load(self) -> int:
        """Replace the in-memory list with the CSV contents; returns the row count kept."""
        self._items.clear()
        if not self.path.exists():
            logger.info("No %s file at %s, starting empty", self.name, self.path)
            return 0

        with self.path.open("r", encoding="utf-8", newline="") as f:
            for lineno, row in enumerate(csv.DictReader(f), start=2):
                try:
                    entity = self._decode(row)
                except (ValidationError, ValueError) as exc:
                    logger.warning("Skipping invalid %s row %d: %s", self.name, lineno, exc)
                    continue
                if self.get(self._id_of(entity)) is not None:
                    logger.warning(
                        "Skipping duplicate %s row %d (ID %s)", self.name, lineno, self._id_of(entity)
                    )
                    continue
                self._items.append(entity)

        logger.info("Loaded %d %s from %s", len(self._items), self.name, self.path)
        return len(self._items)

    def stage(self) -> Path:
        """Write the tmp file for :meth:`save` without replacing the CSV."""
        return _write_tmp_csv(self.path, self.columns, [self._encode(e) for e in self._items])

    def save(self) -> None:
        self.stage().replace(self.path)
        logger.debug("Saved %d %s to %s", len(self._items), self.name, self.path)


# ---------------------------------------------------------------------------
# Column schemas
# ---------------------------------------------------------------------------

USER_COLUMNS = (
    "user_id", "password_hash", "role", "name", "date_of_birth", "gender",
    "contact_number", "email_address", "blood_type", "specialization",
)
SLOT_COLUMNS = ("slot_id", "doctor_id", "date", "start_time", "end_time", "status")
APPOINTMENT_COLUMNS = ("appointment_id", "patient_id", "doctor_id", "slot_id", "status", "outcome_id")
OUTCOME_COLUMNS = (
    "outcome_id", "appointment_id", "service_provided", "prescription_ids",
    "consultation_notes", "recorded_on",
)
PRESCRIPTION_COLUMNS = ("prescription_id", "appointment_id", "medication_id", "quantity", "status", "notes")
MEDICATION_COLUMNS = ("medication_id", "name", "stock_level", "low_stock_alert_level")
REQUEST_COLUMNS = (
    "request_id", "medication_id", "quantity", "status", "requested_by",
    "approved_by", "requested_at", "approved_at",
)
HISTORY_COLUMNS = ("history_id", "patient_id", "diagnosis_date", "diagnosis", "treatment")


# ---------------------------------------------------------------------------
# Clinic store
# ---------------------------------------------------------------------------


class ClinicStore:
    """All entity repositories of one clinic, rooted at *data_dir*."""

    def __init__(self, data_dir: Path, *, fernet: Fernet | None = None, autosave: bool = False):
        self.data_dir = Path(data_dir)
        self.autosave = autosave
        d = self.data_dir

        self.users: Repository[User] = Repository(
            "users", d / "users.csv", USER_COLUMNS, "user_id", "U", parse_user,
        )
        self.slots: Repository[Slot] = Repository(
            "slots", d / "slots.csv", SLOT_COLUMNS, "slot_id", "S", Slot.model_validate,
        )
        self.appointments: Repository[Appointment] = Repository(
            "appointments", d / "appointments.csv", APPOINTMENT_COLUMNS,
            "appointment_id", "A", Appointment.model_validate,
        )
        self.outcomes: Repository[Outcome] = Repository(
            "outcomes", d / "outcomes.csv", OUTCOME_COLUMNS, "outcome_id", "O",
            Outcome.model_validate,
            list_fields=("prescription_ids",),
            encrypted_fields=("consultation_notes",),
            fernet=fernet,
        )
        self.prescriptions: Repository[Prescription] = Repository(
            "prescriptions", d / "prescriptions.csv", PRESCRIPTION_COLUMNS,
            "prescription_id", "RX", Prescription.model_validate,
        )
        self.medications: Repository[Medication] = Repository(
            "medications", d / "medications.csv", MEDICATION_COLUMNS,
            "medication_id", "M", Medication.model_validate,
        )
        self.requests: Repository[Request] = Repository(
            "requests", d / "requests.csv", REQUEST_COLUMNS, "request_id", "R",
            Request.model_validate,
        )
        self.history: Repository[HistoryEntry] = Repository(
            "history", d / "history.csv", HISTORY_COLUMNS, "history_id", "H",
            HistoryEntry.model_validate,
            encrypted_fields=("diagnosis", "treatment"),
            fernet=fernet,
        )
        self._persisted = self._snapshot()

    @classmethod
    def from_settings(cls, settings: Settings) -> ClinicStore:
        """Build a store for *settings* and load whatever is on disk."""
        fernet = None
        if settings.encrypt_phi:
            fernet = get_fernet(settings.data_key, settings.data_dir / KEY_FILE_NAME)
        store = cls(settings.data_dir, fernet=fernet, autosave=settings.autosave)
        store.load()
        return store

    @property
    def repositories(self) -> tuple[Repository, ...]:
        return (
            self.users, self.slots, self.appointments, self.outcomes,
            self.prescriptions, self.medications, self.requests, self.history,
        )

    def _snapshot(self) -> dict[str, list]:
        return {repo.name: repo.snapshot() for repo in self.repositories}

    def load(self) -> None:
        for repo in self.repositories:
            repo.load()
        self._persisted = self._snapshot()

    def save(self) -> None:
        """
        Write every repository to disk, or none of them.

        Raises:
            StoreWriteError: a tmp file could not be written.  The CSV files
                are left exactly as they were.
        """
        staged: list[tuple[Path, Path]] = []
        try:
            for repo in self.repositories:
                staged.append((repo.stage(), repo.path))
        except OSError as exc:
            for tmp, _ in staged:
                tmp.unlink(missing_ok=True)
            logger.error("Clinic store not saved to %s: %s", self.data_dir, exc)
            raise StoreWriteError(f"Could not write clinic data to {self.data_dir}: {exc}") from exc

        for tmp, path in staged:
            tmp.replace(path)
        self._persisted = self._snapshot()
        logger.info("Clinic store saved to %s", self.data_dir)

    def rollback(self) -> None:
        """Put every repository back to the state last loaded or saved."""
        for repo in self.repositories:
            repo.restore(self._persisted[repo.name])
        logger.warning("Clinic store rolled back to its last saved state")

    def commit(self) -> None:
        """
        Called after every successful mutation; persists when autosave is on.

        A failed autosave rolls the in-memory repositories back before
        re-raising :class:`StoreWriteError`, so memory keeps matching disk.
        """
        if not self.autosave:
            return
        try:
            self.save()
        except StoreWriteError:
            self.rollback()
            raise
