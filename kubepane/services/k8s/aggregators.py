"""
Resource aggregators.

One aggregator per resource kind loads that kind for a connection profile,
folds the result into an immutable :class:`ResourceIndex` and publishes a new
snapshot to its subscribers. Every load replaces exactly the partitions it was
responsible for, so repeating a load never accumulates duplicates.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Sequence

import structlog

from kubepane.config import Settings, get_settings
from kubepane.exceptions import ClusterRequestError
from kubepane.schemas.kubernetes import (
    Deployment,
    Event,
    Namespace,
    Node,
    Pod,
    ReplicaSet,
    ResourceKind,
    ResourceQuota,
    ResourceQuotaStatus,
)
from kubepane.services.k8s.client import ClientFactory, ClusterClient, KubernetesClusterClient, Scope
from kubepane.services.k8s.index import (
    CLUSTER_PARTITION,
    AggregatorSnapshot,
    IndexBuilder,
    LoadResult,
    LoadStatus,
    NamespaceSnapshot,
    NodeSnapshot,
    PhaseError,
    ResourceIndex,
    SnapshotChannel,
    Subscriber,
    T,
)

if TYPE_CHECKING:
    from kubepane.models.connection_profile import ConnectionProfile

logger = structlog.get_logger(__name__)


def _phase_error(exc: ClusterRequestError) -> PhaseError:
    return PhaseError(kind=exc.kind, message=exc.message, status=exc.status)


class ResourceAggregator(Generic[T]):
    """Loads one resource kind and publishes immutable snapshots of it.

    Loads on one aggregator run one at a time. Subclasses set ``kind`` and may
    add a secondary phase by overriding :meth:`_load_secondary`.
    """

    kind: ClassVar[ResourceKind]
    snapshot_type: ClassVar[type[AggregatorSnapshot[Any]]] = AggregatorSnapshot

    def __init__(self, client_factory: ClientFactory | None = None, *, settings: Settings | None = None) -> None:
        self._client_factory = client_factory or KubernetesClusterClient.from_profile
        self._settings = settings or get_settings()
        self._snapshot: AggregatorSnapshot[T] = self.snapshot_type()
        self._channel = SnapshotChannel(name=self.kind.value)
        self._lock = asyncio.Lock()
        self._closing: set[asyncio.Future[None]] = set()

    @property
    def snapshot(self) -> AggregatorSnapshot[T]:
        return self._snapshot

    @property
    def index(self) -> ResourceIndex[T]:
        return self._snapshot.index

    def subscribe(self, callback: Subscriber):
        """Register for every snapshot published from now on; returns the unsubscribe function."""
        return self._channel.subscribe(callback)

    def default_scope(self, profile: "ConnectionProfile") -> Scope:
        if self.kind.namespaced:
            return Scope.namespace(profile.namespace or self._settings.default_namespace)
        return Scope.cluster()

    def partition_key(self, resource: T) -> str | None:
        """Index key of a resource, or None when it must be dropped."""
        if not self.kind.namespaced:
            return CLUSTER_PARTITION
        return resource.metadata.namespace or None

    async def load(
        self,
        profile: "ConnectionProfile",
        scope: Scope | None = None,
        owner: str | None = None,
    ) -> LoadResult[T]:
        """
        Load this kind for ``profile`` and publish the new snapshot.

        Args:
            profile: connection profile to authenticate with
            scope: defaults to the profile's namespace for namespaced kinds, cluster-wide otherwise
            owner: keep only resources with an owner reference of this name

        Returns:
            the load outcome; list failures are reported here, not raised

        Raises:
            CredentialError: the profile's certificate or key material is
                malformed; only absent material skips the load
        """
        log = logger.bind(kind=self.kind.value, profile=profile.name)
        if not profile.is_authenticated():
            log.info("aggregator.skipped_unauthenticated")
            return LoadResult(status=LoadStatus.SKIPPED, snapshot=self._snapshot)

        scope = scope or self.default_scope(profile)
        async with self._lock:
            started = time.perf_counter()
            cluster = await self._build_client(profile, log)
            try:
                return await self._load(cluster, scope, owner, started, log)
            finally:
                await cluster.close()

    async def _build_client(self, profile: "ConnectionProfile", log: Any) -> ClusterClient:
        # the worker thread outlives a cancelled load; whatever it builds is closed
        build = asyncio.ensure_future(asyncio.to_thread(self._client_factory, profile))
        try:
            return await asyncio.shield(build)
        except asyncio.CancelledError:
            build.add_done_callback(lambda done: self._close_abandoned(done, log))
            raise

    def _close_abandoned(self, build: "asyncio.Future[ClusterClient]", log: Any) -> None:
        if build.cancelled() or build.exception() is not None:
            return
        log.debug("aggregator.abandoned_client_closed")
        closing = asyncio.ensure_future(build.result().close())
        self._closing.add(closing)
        closing.add_done_callback(self._closing.discard)

    async def _load(
        self,
        cluster: ClusterClient,
        scope: Scope,
        owner: str | None,
        started: float,
        log: Any,
    ) -> LoadResult[T]:
        try:
            items: Sequence[T] = await cluster.list(self.kind, scope)  # type: ignore[assignment]
        except ClusterRequestError as exc:
            log.error("aggregator.primary_failed", scope=str(scope), error=exc.message)
            return LoadResult(
                status=LoadStatus.FAILED,
                snapshot=self._snapshot,
                errors=(_phase_error(exc),),
                duration_ms=_elapsed_ms(started),
            )

        builder: IndexBuilder[T] = IndexBuilder(self.kind)
        for item in items:
            if owner is not None and not item.metadata.is_owned_by(owner):
                continue
            key = self.partition_key(item)
            if key is None:
                builder.dropped += 1
                log.warning("aggregator.namespace_missing", name=item.name, uid=item.uid)
                continue
            builder.add(key, item)

        owned_keys = [scope.name] if scope.is_namespaced else None
        index = self._snapshot.index.replace(builder.build(), owned_keys)
        log.debug("aggregator.primary_loaded", scope=str(scope), partitions=len(index), items=len(items))

        status = LoadStatus.OK
        errors: tuple[PhaseError, ...] = ()
        dropped = builder.dropped
        try:
            extras, secondary_dropped = await self._load_secondary(cluster, index, log)
            dropped += secondary_dropped
        except ClusterRequestError as exc:
            log.error("aggregator.secondary_failed", secondary=exc.kind.value, error=exc.message)
            status = LoadStatus.PARTIAL
            errors = (_phase_error(exc),)
            extras = {}

        snapshot = self.snapshot_type(
            index=index,
            generation=self._snapshot.generation + 1,
            loaded_at=datetime.now(tz=timezone.utc),
            **extras,
        )
        self._snapshot = snapshot
        await self._channel.publish(snapshot)
        return LoadResult(
            status=status,
            snapshot=snapshot,
            errors=errors,
            dropped=dropped,
            duration_ms=_elapsed_ms(started),
        )

    async def _load_secondary(
        self, cluster: ClusterClient, index: ResourceIndex[T], log: Any
    ) -> tuple[dict[str, Any], int]:
        """Extra snapshot fields and the number of dropped items; kinds without one return nothing."""
        return {}, 0


class NamespaceAggregator(ResourceAggregator[Namespace]):
    """Namespaces, plus the resource quota status of each namespace."""

    kind = ResourceKind.NAMESPACE
    snapshot_type = NamespaceSnapshot

    @property
    def snapshot(self) -> NamespaceSnapshot:
        return self._snapshot  # type: ignore[return-value]

    async def _load_secondary(
        self, cluster: ClusterClient, index: ResourceIndex[Namespace], log: Any
    ) -> tuple[dict[str, Any], int]:
        quotas: list[ResourceQuota] = await cluster.list(  # type: ignore[assignment]
            ResourceKind.RESOURCE_QUOTA, Scope.all_namespaces()
        )
        by_namespace: dict[str, ResourceQuotaStatus] = {}
        dropped = 0
        for quota in quotas:
            if not quota.metadata.namespace:
                dropped += 1
                log.warning("aggregator.quota_namespace_missing", name=quota.name, uid=quota.uid)
                continue
            # one quota per namespace, the last one listed wins
            by_namespace[quota.metadata.namespace] = quota.status
        return {"quotas": MappingProxyType(by_namespace)}, dropped


class NodeAggregator(ResourceAggregator[Node]):
    """Nodes, plus the events that involve each node."""

    kind = ResourceKind.NODE
    snapshot_type = NodeSnapshot

    @property
    def snapshot(self) -> NodeSnapshot:
        return self._snapshot  # type: ignore[return-value]

    async def _load_secondary(
        self, cluster: ClusterClient, index: ResourceIndex[Node], log: Any
    ) -> tuple[dict[str, Any], int]:
        events: list[Event] = await cluster.list(  # type: ignore[assignment]
            ResourceKind.EVENT, Scope.all_namespaces()
        )
        node_names = {node.name for node in index.resources()}
        by_node: dict[str, list[Event]] = {name: [] for name in node_names}
        seen: dict[str, set[str]] = {name: set() for name in node_names}
        for event in events:
            name = event.involved_object.name
            if name not in by_node or not event.involves(ResourceKind.NODE, name):
                continue
            if event.uid is not None:
                if event.uid in seen[name]:
                    continue
                seen[name].add(event.uid)
            by_node[name].append(event)
        return {"events": MappingProxyType({name: tuple(items) for name, items in by_node.items()})}, 0


class DeploymentAggregator(ResourceAggregator[Deployment]):
    kind = ResourceKind.DEPLOYMENT


class ReplicaSetAggregator(ResourceAggregator[ReplicaSet]):
    kind = ResourceKind.REPLICA_SET


class PodAggregator(ResourceAggregator[Pod]):
    kind = ResourceKind.POD


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


AGGREGATORS: dict[ResourceKind, type[ResourceAggregator[Any]]] = {
    ResourceKind.NAMESPACE: NamespaceAggregator,
    ResourceKind.NODE: NodeAggregator,
    ResourceKind.DEPLOYMENT: DeploymentAggregator,
    ResourceKind.REPLICA_SET: ReplicaSetAggregator,
    ResourceKind.POD: PodAggregator,
}
