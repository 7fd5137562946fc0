"""Tests for client certificate credential handling."""

from __future__ import annotations

import io

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec

from kubepane.core.credentials import (
    CredentialSlot,
    describe_certificate,
    parse_certificate,
    parse_private_key,
    parse_slot,
    read_pem_source,
    validate_credentials,
)
from kubepane.exceptions import CredentialError

GARBAGE = b"this is not a PEM document"


class TestParsing:
    def test_parse_certificate(self, pem) -> None:
        cert = parse_certificate(pem.cert)
        assert isinstance(cert, x509.Certificate)

    def test_parse_private_key(self, pem) -> None:
        key = parse_private_key(pem.key)
        assert isinstance(key, ec.EllipticCurvePrivateKey)

    @pytest.mark.parametrize("data", [GARBAGE, b""])
    def test_malformed_certificate_raises_with_slot(self, data: bytes) -> None:
        with pytest.raises(CredentialError) as excinfo:
            parse_certificate(data, CredentialSlot.SERVER_CA)
        assert excinfo.value.slot is CredentialSlot.SERVER_CA
        assert excinfo.value.code == "CREDENTIAL_ERROR"
        assert excinfo.value.to_dict()["details"] == {"slot": "server_ca"}

    @pytest.mark.parametrize("data", [GARBAGE, b""])
    def test_malformed_key_raises(self, data: bytes) -> None:
        with pytest.raises(CredentialError) as excinfo:
            parse_private_key(data)
        assert excinfo.value.slot is CredentialSlot.CLIENT_KEY

    def test_certificate_in_key_slot_is_rejected(self, pem) -> None:
        with pytest.raises(CredentialError):
            parse_slot(CredentialSlot.CLIENT_KEY, pem.cert)

    def test_parse_slot_dispatches_on_slot(self, pem) -> None:
        assert isinstance(parse_slot(CredentialSlot.CLIENT_CERT, pem.cert), x509.Certificate)
        assert isinstance(parse_slot(CredentialSlot.CLIENT_KEY, pem.key), ec.EllipticCurvePrivateKey)


class TestValidateCredentials:
    def test_all_absent(self) -> None:
        parsed = validate_credentials()
        assert parsed.server_ca is None
        assert parsed.is_authenticated is False

    def test_cert_and_key(self, pem) -> None:
        parsed = validate_credentials(client_cert=pem.cert, client_key=pem.key)
        assert parsed.is_authenticated is True
        assert parsed.server_ca is None

    def test_cert_without_key_is_not_authenticated(self, pem) -> None:
        parsed = validate_credentials(server_ca=pem.ca, client_cert=pem.cert)
        assert parsed.is_authenticated is False

    def test_first_malformed_blob_is_reported(self, pem) -> None:
        with pytest.raises(CredentialError) as excinfo:
            validate_credentials(server_ca=GARBAGE, client_cert=pem.cert, client_key=GARBAGE)
        assert excinfo.value.slot is CredentialSlot.SERVER_CA


def test_describe_certificate_shows_common_name_and_expiry(pem) -> None:
    text = describe_certificate(parse_certificate(pem.cert))
    assert text.startswith("kubepane-admin (expires ")
    assert text.endswith(")")


class TestReadPemSource:
    def test_bytes_are_returned_verbatim(self, pem) -> None:
        assert read_pem_source(pem.cert) == pem.cert

    def test_str_is_utf8_encoded(self, pem) -> None:
        assert read_pem_source(pem.cert.decode()) == pem.cert

    def test_path(self, tmp_path, pem) -> None:
        path = tmp_path / "client.key"
        path.write_bytes(pem.key)
        assert read_pem_source(path) == pem.key

    def test_binary_file_object(self, pem) -> None:
        assert read_pem_source(io.BytesIO(pem.ca)) == pem.ca

    def test_text_file_object(self, pem) -> None:
        assert read_pem_source(io.StringIO(pem.ca.decode())) == pem.ca
