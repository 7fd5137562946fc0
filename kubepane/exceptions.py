from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from kubepane.core.credentials import CredentialSlot
    from kubepane.schemas.kubernetes import ResourceKind


class KubepaneError(Exception):
    """Base class for errors raised by kubepane, with a machine readable code."""

    def __init__(self, message: str, *, code: str = "KUBEPANE_ERROR", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class CredentialError(KubepaneError):
    """Stored certificate or key material is malformed or missing.

    This is a configuration error: callers must fix the profile, nothing
    falls back to an unauthenticated connection.
    """

    def __init__(self, message: str, *, slot: "CredentialSlot | None" = None) -> None:
        details = {"slot": slot.value} if slot is not None else None
        super().__init__(message, code="CREDENTIAL_ERROR", details=details)
        self.slot = slot


class ProfileNotFoundError(KubepaneError):
    def __init__(self, profile_id: int) -> None:
        super().__init__(
            f"connection profile {profile_id} does not exist",
            code="PROFILE_NOT_FOUND",
            details={"profile_id": profile_id},
        )
        self.profile_id = profile_id


class ClusterRequestError(KubepaneError):
    """A list call against the cluster API failed (API error or transport error)."""

    def __init__(self, message: str, *, kind: "ResourceKind", status: int | None = None) -> None:
        details: Dict[str, Any] = {"kind": kind.value}
        if status is not None:
            details["status"] = status
        super().__init__(message, code="CLUSTER_REQUEST_ERROR", details=details)
        self.kind = kind
        self.status = status


class KubeconfigError(KubepaneError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="KUBECONFIG_ERROR")
