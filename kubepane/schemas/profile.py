from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from kubepane.core.credentials import describe_certificate
from kubepane.exceptions import CredentialError

if TYPE_CHECKING:
    from kubepane.models.connection_profile import ConnectionProfile

logger = structlog.get_logger(__name__)


class ConnectionProfilePayload(BaseModel):
    """Editable fields of a connection profile."""

    name: str = Field(..., min_length=1, max_length=128)
    server: AnyHttpUrl
    namespace: str = Field("default", min_length=1, max_length=128)

    @property
    def server_url(self) -> str:
        # AnyHttpUrl appends "/" to a bare host
        return str(self.server).rstrip("/")


class ConnectionProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    server: str
    namespace: str
    authenticated: bool
    has_server_ca: bool
    has_client_cert: bool
    has_client_key: bool
    server_ca_description: str | None = None
    client_cert_description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_profile(cls, profile: "ConnectionProfile") -> "ConnectionProfileSummary":
        return cls(
            id=profile.id,
            name=profile.name,
            server=profile.server,
            namespace=profile.namespace,
            authenticated=_authenticated(profile),
            has_server_ca=profile.server_ca_bytes is not None,
            has_client_cert=profile.client_cert_bytes is not None,
            has_client_key=profile.client_key_bytes is not None,
            server_ca_description=_describe(profile, "server_ca"),
            client_cert_description=_describe(profile, "client_cert"),
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


def _authenticated(profile: "ConnectionProfile") -> bool:
    try:
        return profile.is_authenticated()
    except CredentialError as exc:
        logger.warning("profile.credentials_invalid", profile=profile.name, slot=exc.details.get("slot"))
        return False


def _describe(profile: "ConnectionProfile", attribute: str) -> str | None:
    try:
        cert = getattr(profile, attribute)
    except CredentialError:
        return None
    return describe_certificate(cert) if cert is not None else None
