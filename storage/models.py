"""
storage/models.py

Pydantic v2 entity models for the MedCore hospital management system.

These models describe every record the clinic keeps: users (one variant per
role), doctor slots, appointments, outcomes, prescriptions, medications,
replenishment requests and medical history entries.  They are NOT tied to a
storage format; the CSV mapping lives in csv_store.py.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class UserRole(str, Enum):
    """The four roles a registered identity can hold."""
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    PHARMACIST = "PHARMACIST"
    ADMINISTRATOR = "ADMINISTRATOR"


class SlotStatus(str, Enum):
    """Lifecycle states of a doctor's slot."""
    AVAILABLE = "AVAILABLE"  # open for booking
    PENDING = "PENDING"      # requested, waiting for the doctor
    BOOKED = "BOOKED"        # confirmed by the doctor
    COMPLETED = "COMPLETED"  # consultation held
    REMOVED = "REMOVED"      # soft delete

    @property
    def display_rank(self) -> int:
        """Position of this status in schedule listings (lower shows first)."""
        return _SLOT_DISPLAY_ORDER.index(self)


_SLOT_DISPLAY_ORDER = (
    SlotStatus.BOOKED,
    SlotStatus.PENDING,
    SlotStatus.AVAILABLE,
    SlotStatus.COMPLETED,
    SlotStatus.REMOVED,
)


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def _missing_(cls, value: object) -> AppointmentStatus | None:
        # Older data files spell it with one "L".
        if isinstance(value, str) and value.strip().upper() == "CANCELED":
            return cls.CANCELLED
        return None

    @property
    def is_active(self) -> bool:
        return self in (AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED)


class PrescriptionStatus(str, Enum):
    PENDING = "PENDING"
    DISPENSED = "DISPENSED"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"


# ---------------------------------------------------------------------------
# Users (tagged union on ``role``)
# ---------------------------------------------------------------------------


class RoleMismatchError(PermissionError):
    """Raised when a user is narrowed to a role they do not hold."""


class UserBase(BaseModel):
    """Fields shared by every role."""
    user_id: str
    password_hash: str = Field(
        description='PBKDF2 blob "<hex_salt>:<hex_hash>", see storage.auth.'
    )
    name: str
    date_of_birth: str = ""
    gender: str = ""
    contact_number: str = ""
    email_address: str = ""

    def _narrow(self, cls: type, role: UserRole):
        if not isinstance(self, cls):
            raise RoleMismatchError(
                f"User {self.user_id} is a {self.role.value.lower()}, not a {role.value.lower()}."
            )
        return self

    def as_patient(self) -> Patient:
        return self._narrow(Patient, UserRole.PATIENT)

    def as_doctor(self) -> Doctor:
        return self._narrow(Doctor, UserRole.DOCTOR)

    def as_pharmacist(self) -> Pharmacist:
        return self._narrow(Pharmacist, UserRole.PHARMACIST)

    def as_administrator(self) -> Administrator:
        return self._narrow(Administrator, UserRole.ADMINISTRATOR)


class Patient(UserBase):
    role: Literal[UserRole.PATIENT] = UserRole.PATIENT
    blood_type: str = ""


class Doctor(UserBase):
    role: Literal[UserRole.DOCTOR] = UserRole.DOCTOR
    specialization: str = ""


class Pharmacist(UserBase):
    role: Literal[UserRole.PHARMACIST] = UserRole.PHARMACIST


class Administrator(UserBase):
    role: Literal[UserRole.ADMINISTRATOR] = UserRole.ADMINISTRATOR


User = Annotated[
    Union[Patient, Doctor, Pharmacist, Administrator],
    Field(discriminator="role"),
]

USER_ADAPTER: TypeAdapter[User] = TypeAdapter(User)


def parse_user(data: dict) -> User:
    """Build the right ``User`` variant from a mapping with a ``role`` key."""
    if isinstance(data.get("role"), str):
        data = {**data, "role": data["role"].strip().upper()}
    return USER_ADAPTER.validate_python(data)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class Slot(BaseModel):
    """A doctor-owned bookable time interval."""
    slot_id: str
    doctor_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    status: SlotStatus = SlotStatus.AVAILABLE

    @model_validator(mode="after")
    def _check_times(self) -> Slot:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    def overlaps(self, other: Slot) -> bool:
        return (
            self.doctor_id == other.doctor_id
            and self.date == other.date
            and self.start_time < other.end_time
            and other.start_time < self.end_time
        )


class Appointment(BaseModel):
    """A patient's booking against one slot."""
    appointment_id: str
    patient_id: str
    doctor_id: str
    slot_id: str
    status: AppointmentStatus = AppointmentStatus.REQUESTED
    outcome_id: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalise_status(cls, value):
        if isinstance(value, str):
            return AppointmentStatus(value.strip().upper())
        return value


# ---------------------------------------------------------------------------
# Clinical records
# ---------------------------------------------------------------------------


class Outcome(BaseModel):
    """The clinical record produced when an appointment completes."""
    outcome_id: str
    appointment_id: str
    service_provided: str
    prescription_ids: list[str] = Field(default_factory=list)
    consultation_notes: str = ""
    recorded_on: dt.date | None = None


class Prescription(BaseModel):
    prescription_id: str
    appointment_id: str
    medication_id: str
    quantity: int = Field(gt=0)
    status: PrescriptionStatus = PrescriptionStatus.PENDING
    notes: str = ""


class HistoryEntry(BaseModel):
    """One dated diagnosis/treatment line in a patient's medical history."""
    history_id: str
    patient_id: str
    diagnosis_date: dt.date
    diagnosis: str
    treatment: str = ""


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class Medication(BaseModel):
    medication_id: str
    name: str
    stock_level: int = Field(ge=0)
    low_stock_alert_level: int = Field(ge=0)

    @property
    def is_low_stock(self) -> bool:
        return self.stock_level < self.low_stock_alert_level


class Request(BaseModel):
    """A pharmacist's ask to replenish one medication."""
    request_id: str
    medication_id: str
    quantity: int = Field(gt=0)
    status: RequestStatus = RequestStatus.PENDING
    requested_by: str
    approved_by: str | None = None
    requested_at: str | None = Field(default=None, description="ISO-8601 UTC timestamp.")
    approved_at: str | None = Field(default=None, description="ISO-8601 UTC timestamp.")


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------


class OutcomeView(BaseModel):
    """An outcome joined with its appointment, slot date and prescriptions."""
    outcome: Outcome
    appointment: Appointment
    appointment_date: dt.date | None = None
    prescriptions: list[Prescription] = Field(default_factory=list)


class MedicalRecord(BaseModel):
    """Everything the clinic knows about one patient."""
    patient: Patient
    history: list[HistoryEntry] = Field(default_factory=list)
    outcomes: list[OutcomeView] = Field(default_factory=list)
