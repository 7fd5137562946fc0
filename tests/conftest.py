"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import pytest_asyncio
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from hypothesis import HealthCheck, Verbosity, settings
from sqlalchemy.ext.asyncio import async_sessionmaker

from kubepane.config import get_settings
from kubepane.db import create_engine, init_db
from kubepane.models.connection_profile import ConnectionProfile
from kubepane.schemas.kubernetes import ResourceKind, parse_resources
from kubepane.services.k8s.client import Scope
from kubepane.services.profile_store import ProfileStore

# isolated_settings is autouse and function scoped
_common = {"deadline": None, "suppress_health_check": [HealthCheck.function_scoped_fixture]}
settings.register_profile("default", max_examples=50, verbosity=Verbosity.normal, **_common)
settings.register_profile("ci", max_examples=300, verbosity=Verbosity.verbose, **_common)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose, **_common)
settings.load_profile("default")


@dataclass(frozen=True)
class PemMaterial:
    ca: bytes
    cert: bytes
    key: bytes


def make_certificate(common_name: str = "kubepane-test") -> tuple[bytes, bytes]:
    """Self-signed EC certificate and its PKCS8 key, both PEM."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM), key_pem


@pytest.fixture(scope="session")
def pem() -> PemMaterial:
    ca, _ = make_certificate("kubepane-test-ca")
    cert, key = make_certificate("kubepane-admin")
    return PemMaterial(ca=ca, cert=cert, key=key)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Settings come from a clean environment in every test."""
    for name in ("FERNET_KEY", "DEFAULT_NAMESPACE", "MAX_REDIRECTS", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_profile(pem: PemMaterial) -> Callable[..., ConnectionProfile]:
    def _make(
        name: str = "test",
        server: str = "https://k8s.example.com:6443",
        namespace: str = "default",
        *,
        ca: bytes | None = None,
        cert: bytes | None | str = "valid",
        key: bytes | None | str = "valid",
    ) -> ConnectionProfile:
        profile = ConnectionProfile(name=name, server=server, namespace=namespace)
        profile.server_ca_bytes = ca
        profile.client_cert_bytes = pem.cert if cert == "valid" else cert
        profile.client_key_bytes = pem.key if key == "valid" else key
        return profile

    return _make


@pytest.fixture
def profile(make_profile) -> ConnectionProfile:
    return make_profile()


class FakeClusterClient:
    """In-memory ``ClusterClient``: raw payloads (or an exception) per kind."""

    def __init__(self, responses: dict[ResourceKind, Any] | None = None) -> None:
        self.responses: dict[ResourceKind, Any] = dict(responses or {})
        self.calls: list[tuple[ResourceKind, Scope]] = []
        self.closed = False
        self.close_count = 0

    async def list(self, kind: ResourceKind, scope: Scope):
        self.calls.append((kind, scope))
        response = self.responses.get(kind, [])
        if isinstance(response, Exception):
            raise response
        if scope.is_namespaced:
            response = [item for item in response if (item.get("metadata") or {}).get("namespace") == scope.name]
        return parse_resources(kind, response)

    async def close(self) -> None:
        self.closed = True
        self.close_count += 1


@pytest.fixture
def fake_client() -> FakeClusterClient:
    return FakeClusterClient()


@pytest.fixture
def client_factory(fake_client: FakeClusterClient):
    built: list[ConnectionProfile] = []

    def _factory(profile: ConnectionProfile) -> FakeClusterClient:
        built.append(profile)
        return fake_client

    _factory.built = built  # type: ignore[attr-defined]
    return _factory


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'profiles.db'}")
    await init_db(engine)
    yield ProfileStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()
