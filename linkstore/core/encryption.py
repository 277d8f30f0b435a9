"""Encryption helpers for the secure cache tier."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from linkstore.core.config import settings
from linkstore.core.exceptions import CacheTierUnavailableException


@lru_cache(maxsize=4)
def get_fernet(key: str) -> Fernet:
    """Get a Fernet instance for the given passphrase.

    Derives a valid 32-byte Fernet key from the passphrase using SHA-256,
    then base64-encodes it.

    Note: Changing the passphrase makes previously cached values
    undecryptable; the secure tier then reads as empty.
    """
    key_bytes = hashlib.sha256(key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def _resolve_key(key: str | None) -> str:
    resolved = settings.cache_encryption_key if key is None else key
    if not resolved:
        raise CacheTierUnavailableException("No cache encryption key configured")
    return resolved


def encrypt_value(value: str, key: str | None = None) -> str:
    """Encrypt a string value."""
    f = get_fernet(_resolve_key(key))
    return f.encrypt(value.encode()).decode()


def decrypt_value(encrypted: str, key: str | None = None) -> str:
    """Decrypt an encrypted string value."""
    f = get_fernet(_resolve_key(key))
    return f.decrypt(encrypted.encode()).decode()
