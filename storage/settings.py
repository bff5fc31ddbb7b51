"""
storage/settings.py

Runtime configuration for MedCore HMS, read from environment variables.

Variables
---------
HMS_DATA_DIR             Directory holding the CSV files (default ./data).
HMS_SLOT_RELEASE_POLICY  What a slot becomes when its appointment is
                         declined or cancelled: ``removed`` (default) or
                         ``available``.
HMS_AUTOSAVE             Persist the store after every committed change.
HMS_ENCRYPT_PHI          Encrypt clinical free-text columns at rest.
APP_DATA_KEY             Fernet key for PHI columns (see storage.crypto).
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field, field_validator

from storage.models import SlotStatus

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"

_TRUTHY = {"1", "true", "yes", "on"}


class SlotReleasePolicy(str, Enum):
    """Status a slot falls back to once its appointment is given up."""
    REMOVED = "removed"
    AVAILABLE = "available"

    @property
    def released_status(self) -> SlotStatus:
        if self is SlotReleasePolicy.AVAILABLE:
            return SlotStatus.AVAILABLE
        return SlotStatus.REMOVED


class Settings(BaseModel):
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)
    slot_release_policy: SlotReleasePolicy = SlotReleasePolicy.REMOVED
    autosave: bool = True
    encrypt_phi: bool = True
    data_key: str | None = Field(default=None, repr=False)

    @field_validator("slot_release_policy", mode="before")
    @classmethod
    def _lower(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


def _flag(raw: str | None, default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from *environ* (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ
    return Settings(
        data_dir=Path(env.get("HMS_DATA_DIR") or DEFAULT_DATA_DIR),
        slot_release_policy=env.get("HMS_SLOT_RELEASE_POLICY") or SlotReleasePolicy.REMOVED,
        autosave=_flag(env.get("HMS_AUTOSAVE"), True),
        encrypt_phi=_flag(env.get("HMS_ENCRYPT_PHI"), True),
        data_key=env.get("APP_DATA_KEY") or None,
    )
