"""Tests for encryption at rest of stored credential bytes."""

from __future__ import annotations

import pytest
import structlog
from cryptography.fernet import Fernet

from kubepane.config import get_settings
from kubepane.core.crypto import decrypt_if_encrypted, encrypt_if_configured


@pytest.fixture
def fernet_key(monkeypatch: pytest.MonkeyPatch) -> str:
    key = Fernet.generate_key().decode()
    monkeypatch.setenv("FERNET_KEY", key)
    get_settings.cache_clear()
    return key


def test_passthrough_without_key() -> None:
    assert encrypt_if_configured(b"secret") == b"secret"
    assert decrypt_if_encrypted(b"secret") == b"secret"


def test_none_stays_none(fernet_key: str) -> None:
    assert encrypt_if_configured(None) is None
    assert decrypt_if_encrypted(None) is None


def test_encrypts_with_prefix(fernet_key: str) -> None:
    stored = encrypt_if_configured(b"secret")
    assert stored is not None
    assert stored.startswith(b"enc:")
    assert b"secret" not in stored
    assert decrypt_if_encrypted(stored) == b"secret"


def test_unprefixed_value_passes_through(fernet_key: str) -> None:
    assert decrypt_if_encrypted(b"plain pem") == b"plain pem"


def test_undecryptable_value_is_returned_as_stored(fernet_key: str, monkeypatch: pytest.MonkeyPatch) -> None:
    stored = encrypt_if_configured(b"secret")
    monkeypatch.setenv("FERNET_KEY", Fernet.generate_key().decode())
    get_settings.cache_clear()
    with structlog.testing.capture_logs() as logs:
        assert decrypt_if_encrypted(stored) == stored
    assert [entry["event"] for entry in logs] == ["crypto.undecryptable"]


def test_encrypted_value_without_key_is_returned_as_stored(fernet_key: str, monkeypatch: pytest.MonkeyPatch) -> None:
    stored = encrypt_if_configured(b"secret")
    monkeypatch.delenv("FERNET_KEY")
    get_settings.cache_clear()
    with structlog.testing.capture_logs() as logs:
        assert decrypt_if_encrypted(stored) == stored
    assert logs[0]["event"] == "crypto.encrypted_without_key"


def test_invalid_key_disables_encryption(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FERNET_KEY", "not-a-fernet-key")
    get_settings.cache_clear()
    with structlog.testing.capture_logs() as logs:
        assert encrypt_if_configured(b"secret") == b"secret"
    assert logs[0]["event"] == "crypto.invalid_key"
    assert logs[0]["log_level"] == "warning"
