"""
Client certificate credential handling.

PEM material is stored verbatim on a connection profile; this module turns it
into ``cryptography`` objects. Parsing never degrades to an empty value: a
malformed blob raises :class:`~kubepane.exceptions.CredentialError`.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import BinaryIO, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import NameOID

from kubepane.exceptions import CredentialError

PemSource = Union[bytes, str, Path, BinaryIO]


class CredentialSlot(str, enum.Enum):
    SERVER_CA = "server_ca"
    CLIENT_CERT = "client_cert"
    CLIENT_KEY = "client_key"

    @property
    def label(self) -> str:
        return {
            CredentialSlot.SERVER_CA: "server CA certificate",
            CredentialSlot.CLIENT_CERT: "client certificate",
            CredentialSlot.CLIENT_KEY: "client key",
        }[self]


@dataclass(frozen=True)
class ParsedCredentials:
    server_ca: x509.Certificate | None = None
    client_cert: x509.Certificate | None = None
    client_key: PrivateKeyTypes | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.client_cert is not None and self.client_key is not None


def parse_certificate(data: bytes, slot: CredentialSlot = CredentialSlot.CLIENT_CERT) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(data)
    except (ValueError, TypeError) as exc:
        raise CredentialError(f"cannot read {slot.label}: {exc}", slot=slot) from exc


def parse_private_key(data: bytes) -> PrivateKeyTypes:
    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CredentialError(f"cannot read private key: {exc}", slot=CredentialSlot.CLIENT_KEY) from exc


def parse_slot(slot: CredentialSlot, data: bytes) -> x509.Certificate | PrivateKeyTypes:
    if slot is CredentialSlot.CLIENT_KEY:
        return parse_private_key(data)
    return parse_certificate(data, slot)


def validate_credentials(
    server_ca: bytes | None = None,
    client_cert: bytes | None = None,
    client_key: bytes | None = None,
) -> ParsedCredentials:
    """Parse every present blob once.

    Raises:
        CredentialError: the first malformed blob, in CA, cert, key order
    """
    return ParsedCredentials(
        server_ca=parse_certificate(server_ca, CredentialSlot.SERVER_CA) if server_ca is not None else None,
        client_cert=parse_certificate(client_cert, CredentialSlot.CLIENT_CERT) if client_cert is not None else None,
        client_key=parse_private_key(client_key) if client_key is not None else None,
    )


def describe_certificate(cert: x509.Certificate) -> str:
    """Short display text: subject common name and expiry date."""
    names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    subject = str(names[0].value) if names else cert.subject.rfc4514_string()
    expires = cert.not_valid_after_utc.astimezone(timezone.utc).strftime("%Y-%m-%d")
    return f"{subject or 'unnamed'} (expires {expires})"


def read_pem_source(source: PemSource) -> bytes:
    """Read a user selected source into raw bytes, without transformation."""
    if isinstance(source, bytes):
        return source
    if isinstance(source, str):
        return source.encode("utf-8")
    if isinstance(source, Path):
        return source.read_bytes()
    data = source.read()
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)
