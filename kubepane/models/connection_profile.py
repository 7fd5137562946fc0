from __future__ import annotations

from datetime import datetime, timezone

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from sqlalchemy import DateTime, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from kubepane.core.credentials import (
    CredentialSlot,
    ParsedCredentials,
    parse_certificate,
    parse_private_key,
    validate_credentials,
)
from kubepane.core.crypto import decrypt_if_encrypted, encrypt_if_configured
from kubepane.db import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ConnectionProfile(Base):
    """A named cluster endpoint with its client certificate credentials.

    ``namespace`` is only the starting namespace for namespaced views. The
    ``*_data`` columns hold PEM bytes exactly as imported, encrypted at rest
    when a Fernet key is configured; use the ``*_bytes`` accessors.
    """

    __tablename__ = "connection_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    server: Mapped[str] = mapped_column(String(512), nullable=False)
    namespace: Mapped[str] = mapped_column(String(128), nullable=False, default="default")
    server_ca_data: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    client_cert_data: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    client_key_data: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    _COLUMNS = {
        CredentialSlot.SERVER_CA: "server_ca_data",
        CredentialSlot.CLIENT_CERT: "client_cert_data",
        CredentialSlot.CLIENT_KEY: "client_key_data",
    }

    def __repr__(self) -> str:
        return f"ConnectionProfile(id={self.id!r}, name={self.name!r}, server={self.server!r})"

    def credential_bytes(self, slot: CredentialSlot) -> bytes | None:
        return decrypt_if_encrypted(getattr(self, self._COLUMNS[slot]))

    def set_credential_bytes(self, slot: CredentialSlot, data: bytes | None) -> None:
        setattr(self, self._COLUMNS[slot], encrypt_if_configured(data))

    @property
    def server_ca_bytes(self) -> bytes | None:
        return self.credential_bytes(CredentialSlot.SERVER_CA)

    @server_ca_bytes.setter
    def server_ca_bytes(self, data: bytes | None) -> None:
        self.set_credential_bytes(CredentialSlot.SERVER_CA, data)

    @property
    def client_cert_bytes(self) -> bytes | None:
        return self.credential_bytes(CredentialSlot.CLIENT_CERT)

    @client_cert_bytes.setter
    def client_cert_bytes(self, data: bytes | None) -> None:
        self.set_credential_bytes(CredentialSlot.CLIENT_CERT, data)

    @property
    def client_key_bytes(self) -> bytes | None:
        return self.credential_bytes(CredentialSlot.CLIENT_KEY)

    @client_key_bytes.setter
    def client_key_bytes(self, data: bytes | None) -> None:
        self.set_credential_bytes(CredentialSlot.CLIENT_KEY, data)

    # Parsed on every read; malformed bytes raise CredentialError.

    @property
    def server_ca(self) -> x509.Certificate | None:
        data = self.server_ca_bytes
        return parse_certificate(data, CredentialSlot.SERVER_CA) if data is not None else None

    @property
    def client_cert(self) -> x509.Certificate | None:
        data = self.client_cert_bytes
        return parse_certificate(data, CredentialSlot.CLIENT_CERT) if data is not None else None

    @property
    def client_key(self) -> PrivateKeyTypes | None:
        data = self.client_key_bytes
        return parse_private_key(data) if data is not None else None

    def credentials(self) -> ParsedCredentials:
        return validate_credentials(self.server_ca_bytes, self.client_cert_bytes, self.client_key_bytes)

    def is_authenticated(self) -> bool:
        """Whether the profile carries client certificate authentication.

        False only when the client certificate or key is absent. Present but
        malformed material is a configuration error, not an unauthenticated
        profile.

        Raises:
            CredentialError: the client certificate or key does not parse
        """
        if self.client_cert_bytes is None or self.client_key_bytes is None:
            return False
        return self.client_cert is not None and self.client_key is not None
