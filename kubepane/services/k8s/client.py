"""
Cluster client capability.

``KubernetesClusterClient`` is the only code that talks to the API server. It is
built per load from a connection profile, authenticates with the profile's
client certificate and lists one resource kind at a time.
"""
from __future__ import annotations

import asyncio
import enum
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Protocol, Sequence

import structlog
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError
from urllib3.util.retry import Retry

from kubepane.config import Settings, get_settings
from kubepane.core.credentials import CredentialSlot
from kubepane.exceptions import ClusterRequestError, CredentialError
from kubepane.schemas.kubernetes import KubeResource, ResourceKind, parse_resources

if TYPE_CHECKING:
    from kubepane.models.connection_profile import ConnectionProfile

logger = structlog.get_logger(__name__)


class ScopeLevel(str, enum.Enum):
    NAMESPACE = "namespace"
    ALL_NAMESPACES = "all_namespaces"
    CLUSTER = "cluster"


@dataclass(frozen=True)
class Scope:
    level: ScopeLevel
    name: str | None = None

    @classmethod
    def namespace(cls, name: str) -> "Scope":
        if not name:
            raise ValueError("namespace scope needs a namespace name")
        return cls(ScopeLevel.NAMESPACE, name)

    @classmethod
    def all_namespaces(cls) -> "Scope":
        return cls(ScopeLevel.ALL_NAMESPACES)

    @classmethod
    def cluster(cls) -> "Scope":
        return cls(ScopeLevel.CLUSTER)

    @property
    def is_namespaced(self) -> bool:
        return self.level is ScopeLevel.NAMESPACE

    def __str__(self) -> str:
        return f"namespace/{self.name}" if self.is_namespaced else self.level.value


class ClusterClient(Protocol):
    async def list(self, kind: ResourceKind, scope: Scope) -> list[KubeResource]: ...

    async def close(self) -> None: ...


ClientFactory = Callable[["ConnectionProfile"], ClusterClient]

# kind -> (api, namespaced list call, all-namespaces list call); cluster-scoped kinds have no namespaced call
_LIST_CALLS: dict[ResourceKind, tuple[str, str | None, str]] = {
    ResourceKind.NAMESPACE: ("core", None, "list_namespace"),
    ResourceKind.NODE: ("core", None, "list_node"),
    ResourceKind.POD: ("core", "list_namespaced_pod", "list_pod_for_all_namespaces"),
    ResourceKind.EVENT: ("core", "list_namespaced_event", "list_event_for_all_namespaces"),
    ResourceKind.RESOURCE_QUOTA: (
        "core",
        "list_namespaced_resource_quota",
        "list_resource_quota_for_all_namespaces",
    ),
    ResourceKind.DEPLOYMENT: ("apps", "list_namespaced_deployment", "list_deployment_for_all_namespaces"),
    ResourceKind.REPLICA_SET: ("apps", "list_namespaced_replica_set", "list_replica_set_for_all_namespaces"),
}


def build_retry_policy(max_redirects: int) -> Retry:
    """Follow up to ``max_redirects`` redirects; never retry anything else."""
    return Retry(
        total=None,
        connect=0,
        read=0,
        status=0,
        other=0,
        redirect=max_redirects,
        raise_on_redirect=True,
        raise_on_status=False,
    )


def _write_temp_pem(data: bytes) -> str:
    with tempfile.NamedTemporaryFile(mode="wb", suffix=".pem", delete=False) as f:
        f.write(data)
        return f.name


class KubernetesClusterClient:
    """``ClusterClient`` backed by the official ``kubernetes`` package."""

    def __init__(
        self,
        api_client: client.ApiClient,
        *,
        core_v1: client.CoreV1Api | None = None,
        apps_v1: client.AppsV1Api | None = None,
        request_timeout: tuple[float, float] = (1.0, 10.0),
        temp_files: Sequence[str] = (),
    ) -> None:
        self._api_client = api_client
        self._apis = {
            "core": core_v1 or client.CoreV1Api(api_client),
            "apps": apps_v1 or client.AppsV1Api(api_client),
        }
        self._request_timeout = request_timeout
        self._temp_files = list(temp_files)
        self._closed = False

    @classmethod
    def from_profile(cls, profile: "ConnectionProfile", settings: Settings | None = None) -> "KubernetesClusterClient":
        """
        Build a client authenticated with the profile's client certificate.

        Blocking (parses credentials, writes temporary files); aggregators call
        it from a worker thread.

        Raises:
            CredentialError: malformed material, or no client certificate/key
        """
        settings = settings or get_settings()
        credentials = profile.credentials()
        if credentials.client_cert is None:
            raise CredentialError("profile has no client certificate", slot=CredentialSlot.CLIENT_CERT)
        if credentials.client_key is None:
            raise CredentialError("profile has no client key", slot=CredentialSlot.CLIENT_KEY)

        temp_files: list[str] = []
        try:
            configuration = client.Configuration()
            configuration.host = profile.server
            configuration.verify_ssl = True
            configuration.cert_file = _write_temp_pem(profile.client_cert_bytes or b"")
            temp_files.append(configuration.cert_file)
            configuration.key_file = _write_temp_pem(profile.client_key_bytes or b"")
            temp_files.append(configuration.key_file)
            if profile.server_ca_bytes is not None:
                configuration.ssl_ca_cert = _write_temp_pem(profile.server_ca_bytes)
                temp_files.append(configuration.ssl_ca_cert)
            # without a CA the default trust store verifies the server
            configuration.retries = build_retry_policy(settings.max_redirects)
            api_client = client.ApiClient(configuration)
        except Exception:
            _remove_files(temp_files)
            raise

        logger.debug("cluster.client_created", server=profile.server, profile=profile.name)
        return cls(api_client, request_timeout=settings.request_timeout, temp_files=temp_files)

    def _list_call(self, kind: ResourceKind, scope: Scope) -> tuple[Callable[..., Any], dict[str, Any]]:
        api_name, namespaced_call, all_call = _LIST_CALLS[kind]
        api = self._apis[api_name]
        if scope.is_namespaced:
            if namespaced_call is None:
                raise ValueError(f"{kind.value} is cluster-scoped and cannot be listed in a namespace")
            return getattr(api, namespaced_call), {"namespace": scope.name}
        return getattr(api, all_call), {}

    async def list(self, kind: ResourceKind, scope: Scope) -> list[KubeResource]:
        """
        List every object of ``kind`` within ``scope``.

        Raises:
            ClusterRequestError: the API answered with an error status or the transport failed
            ValueError: a namespace scope was requested for a cluster-scoped kind
        """
        call, kwargs = self._list_call(kind, scope)
        try:
            response = await asyncio.to_thread(call, _request_timeout=self._request_timeout, **kwargs)
        except ApiException as exc:
            logger.error("cluster.list_failed", kind=kind.value, scope=str(scope), status=exc.status, reason=exc.reason)
            raise ClusterRequestError(
                f"listing {kind.value} failed: {exc.status} {exc.reason}", kind=kind, status=exc.status
            ) from exc
        except (HTTPError, OSError) as exc:
            logger.error("cluster.list_failed", kind=kind.value, scope=str(scope), error=str(exc))
            raise ClusterRequestError(f"listing {kind.value} failed: {exc}", kind=kind) from exc

        payloads = [self._api_client.sanitize_for_serialization(item) for item in (response.items or [])]
        resources = parse_resources(kind, payloads)
        logger.debug("cluster.list", kind=kind.value, scope=str(scope), count=len(resources))
        return resources

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.to_thread(self._api_client.close)
        finally:
            _remove_files(self._temp_files)


def _remove_files(paths: Sequence[str]) -> None:
    for path in paths:
        Path(path).unlink(missing_ok=True)
