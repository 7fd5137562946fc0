"""
Encryption at rest for stored credential bytes.

Profiles keep PEM material verbatim. When ``FERNET_KEY`` is configured the
columns hold ``b"enc:" + token`` instead; rows written before a key was set
stay readable because unprefixed values pass through untouched.
"""
from __future__ import annotations

from typing import Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken  # type: ignore[import-untyped]

from kubepane.config import get_settings

logger = structlog.get_logger(__name__)

ENCRYPTED_PREFIX = b"enc:"


def _cipher() -> Optional[Fernet]:
    key = get_settings().fernet_key
    if not key:
        return None
    try:
        return Fernet(key)
    except (ValueError, TypeError):
        logger.warning("crypto.invalid_key")
        return None


def encrypt_if_configured(data: bytes | None) -> bytes | None:
    """Encrypt credential bytes for storage, or return them as given without a usable key."""
    if data is None:
        return None
    cipher = _cipher()
    if cipher is None:
        return data
    return ENCRYPTED_PREFIX + cipher.encrypt(data)


def decrypt_if_encrypted(stored: bytes | None) -> bytes | None:
    """
    Recover credential bytes from a stored column value.

    A value that cannot be decrypted (no key, or a rotated key) comes back as
    stored. It then fails PEM parsing, which surfaces as a CredentialError on
    the profile instead of here.
    """
    if stored is None or not stored.startswith(ENCRYPTED_PREFIX):
        return stored
    cipher = _cipher()
    if cipher is None:
        logger.warning("crypto.encrypted_without_key")
        return stored
    try:
        return cipher.decrypt(stored[len(ENCRYPTED_PREFIX) :])
    except InvalidToken:
        logger.warning("crypto.undecryptable")
        return stored
