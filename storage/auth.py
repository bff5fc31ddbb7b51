"""
storage/auth.py

Authentication provider for MedCore HMS.

Responsibilities
----------------
- Password hashing (PBKDF2-HMAC-SHA256) and verification.
- Login / logout and tracking of the current user.
- Password changes, forced on first login while the default password is set.

Password storage
----------------
Passwords are hashed with ``hashlib.pbkdf2_hmac`` (SHA-256, 260 000
iterations, 16-byte random salt) and stored as a single colon-delimited
string ``"<hex_salt>:<hex_hash>"`` in the ``password_hash`` column of
users.csv.  Plaintext passwords never reach the store.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Any

from storage.csv_store import ClinicStore
from storage.models import User, UserRole, parse_user

logger = logging.getLogger(__name__)


class AuthenticationError(ValueError):
    """Raised when a password change or registration is refused."""


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

_ITERATIONS = 260_000
_HASH_ALG = "sha256"

# Initial password of seeded and newly added accounts.
DEFAULT_PASSWORD = "password"


def _hash_password(password: str, salt: bytes | None = None) -> tuple[bytes, bytes]:
    """
    Hash *password* with PBKDF2-HMAC-SHA256.

    Returns:
        ``(salt, dk)`` where both are raw bytes.
    """
    if salt is None:
        salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac(_HASH_ALG, password.encode("utf-8"), salt, _ITERATIONS)
    return salt, dk


def hash_password(password: str) -> str:
    """Return the ``"<hex_salt>:<hex_hash>"`` blob for *password*."""
    salt, dk = _hash_password(password)
    return f"{salt.hex()}:{dk.hex()}"


def verify_password(password: str, blob: str) -> bool:
    """
    Verify *password* against a stored ``"<hex_salt>:<hex_hash>"`` blob.
    Uses ``hmac.compare_digest`` to prevent timing attacks.
    """
    try:
        hex_salt, hex_hash = blob.split(":", 1)
        salt = bytes.fromhex(hex_salt)
    except ValueError:
        return False
    _, dk = _hash_password(password, salt)
    return hmac.compare_digest(dk.hex(), hex_hash)


def new_user(role: UserRole | str, user_id: str, password: str, name: str, **profile: Any) -> User:
    """
    Build a ``User`` of the given role with a hashed password.

    Raises:
        AuthenticationError: If *password* or *user_id* is blank.
        pydantic.ValidationError: If *role* or a profile field is invalid.
    """
    if not user_id or not user_id.strip():
        raise AuthenticationError("User ID cannot be empty.")
    if not password or not password.strip():
        raise AuthenticationError("Password cannot be empty.")
    role_value = role.value if isinstance(role, UserRole) else role
    return parse_user(
        {
            "user_id": user_id.strip(),
            "password_hash": hash_password(password),
            "role": role_value,
            "name": name,
            **profile,
        }
    )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class AuthService:
    """Login state for one interactive session over a :class:`ClinicStore`."""

    def __init__(self, store: ClinicStore):
        self._store = store
        self._current_user_id: str | None = None
        self.password_change_required = False

    def login(self, user_id: str, password: str) -> User | None:
        """
        Verify credentials and return the ``User`` on success, or ``None``.
        """
        user = self._store.users.get(user_id.strip())
        if user is None:
            logger.debug("login: unknown user '%s'", user_id)
            return None
        if not verify_password(password, user.password_hash):
            logger.warning("login: wrong password for '%s'", user_id)
            return None
        self._current_user_id = user.user_id
        self.password_change_required = password == DEFAULT_PASSWORD
        logger.info("Authenticated user '%s' (role=%s)", user.user_id, user.role.value)
        return user

    def current_user(self) -> User | None:
        if self._current_user_id is None:
            return None
        # Re-read so profile edits made elsewhere are visible.
        return self._store.users.get(self._current_user_id)

    def logout(self) -> None:
        if self._current_user_id is not None:
            logger.info("User '%s' logged out", self._current_user_id)
        self._current_user_id = None
        self.password_change_required = False

    @staticmethod
    def must_change_password(user: User) -> bool:
        """True while *user* still signs in with :data:`DEFAULT_PASSWORD`."""
        return verify_password(DEFAULT_PASSWORD, user.password_hash)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """
        Replace a user's password after checking the old one.

        Raises:
            AuthenticationError: Unknown user, wrong old password, or a new
                password that is blank or the same as the old one.
            StoreWriteError: The new password could not be saved.
        """
        user = self._store.users.get(user_id)
        if user is None:
            raise AuthenticationError("User not found.")
        if not verify_password(old_password, user.password_hash):
            raise AuthenticationError("Incorrect old password.")
        if not new_password or not new_password.strip():
            raise AuthenticationError("New password cannot be empty.")
        if new_password == old_password:
            raise AuthenticationError("New password must be different from the old one.")
        self._store.users.update(user.model_copy(update={"password_hash": hash_password(new_password)}))
        self._store.commit()
        if user_id == self._current_user_id:
            self.password_change_required = False
        logger.info("Password changed for '%s'", user_id)
