"""Encryption helpers for VAPID private keys stored in the database."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from homehub.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make stored VAPID private keys
    undecryptable; regenerate the pair with scripts.generate_vapid_keys.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_secret(secret: str) -> str:
    """Encrypt a secret string."""
    return _get_fernet().encrypt(secret.encode()).decode()


def decrypt_secret(encrypted: str) -> str:
    """Decrypt an encrypted secret string."""
    return _get_fernet().decrypt(encrypted.encode()).decode()
