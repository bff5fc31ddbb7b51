"""
storage/crypto.py

Fernet-based encryption helpers for clinical free-text columns
(consultation notes, diagnoses, treatments) written to the CSV files.

Key lifecycle
-------------
The Fernet key is taken, in order of preference, from:

1. the ``APP_DATA_KEY`` environment variable (passed in as *raw_key*),
   a URL-safe base64-encoded 32-byte key as produced by
   ``Fernet.generate_key()``;
2. a key file next to the data (``<data_dir>/.data.key``);
3. a freshly generated key, written to the key file when one is given.

If neither a key nor a key file is available the key lives in memory only
and a warning is emitted, since encrypted columns will not survive a
process restart.

Public API
----------
get_fernet(raw_key, key_file) -> Fernet
encrypt_text(fernet, text) -> str
decrypt_text(fernet, token) -> str
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

KEY_FILE_NAME = ".data.key"


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------


@lru_cache(maxsize=8)
def get_fernet(raw_key: str | None = None, key_file: Path | None = None) -> Fernet:
    """Return a cached Fernet instance for the given key source."""
    if raw_key:
        logger.debug("Fernet key loaded from APP_DATA_KEY.")
        return Fernet(raw_key.encode("utf-8"))

    if key_file is not None and key_file.exists():
        logger.debug("Fernet key loaded from %s.", key_file)
        return Fernet(key_file.read_bytes().strip())

    key = Fernet.generate_key()
    if key_file is not None:
        key_file.parent.mkdir(parents=True, exist_ok=True)
        key_file.write_bytes(key)
        logger.warning(
            "APP_DATA_KEY is not set. A new Fernet key was generated and stored at %s. "
            "Keep this file with the data; encrypted columns cannot be read without it.",
            key_file,
        )
    else:
        logger.warning(
            "APP_DATA_KEY is not set. A temporary in-memory Fernet key has been generated. "
            "Encrypted data will NOT be recoverable after process restart."
        )
    return Fernet(key)


# ---------------------------------------------------------------------------
# Public encryption helpers
# ---------------------------------------------------------------------------


def encrypt_text(fernet: Fernet, text: str) -> str:
    """Encrypt *text* and return the Fernet token as a UTF-8 string."""
    return fernet.encrypt(text.encode("utf-8")).decode("utf-8")


def decrypt_text(fernet: Fernet, token: str) -> str:
    """
    Decrypt a token produced by :func:`encrypt_text`.

    Raises:
        cryptography.fernet.InvalidToken: If *token* is invalid or was
            encrypted with a different key.
    """
    try:
        plaintext = fernet.decrypt(token.encode("utf-8"))
    except InvalidToken as exc:
        logger.error("Fernet decryption failed: wrong key or corrupted token.")
        raise exc
    return plaintext.decode("utf-8")
