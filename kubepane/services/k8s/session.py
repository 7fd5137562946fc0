from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from kubepane.schemas.kubernetes import Event, Node, ResourceKind, ResourceQuotaStatus
from kubepane.services.k8s.aggregators import (
    AGGREGATORS,
    DeploymentAggregator,
    NamespaceAggregator,
    NodeAggregator,
    PodAggregator,
    ReplicaSetAggregator,
    ResourceAggregator,
)
from kubepane.services.k8s.client import ClientFactory, Scope
from kubepane.services.k8s.index import LoadResult

if TYPE_CHECKING:
    from kubepane.models.connection_profile import ConnectionProfile

logger = structlog.get_logger(__name__)


class ClusterSession:
    """The aggregators behind one profile's screens.

    Each aggregator keeps its own snapshot; the session only routes loads and
    reads. Drill-down loads narrow by owner: deployment -> replica sets -> pods.
    """

    def __init__(self, profile: "ConnectionProfile", client_factory: ClientFactory | None = None) -> None:
        self.profile = profile
        self._aggregators: dict[ResourceKind, ResourceAggregator[Any]] = {
            kind: aggregator_type(client_factory) for kind, aggregator_type in AGGREGATORS.items()
        }
        self.namespaces: NamespaceAggregator = self._aggregators[ResourceKind.NAMESPACE]  # type: ignore[assignment]
        self.nodes: NodeAggregator = self._aggregators[ResourceKind.NODE]  # type: ignore[assignment]
        self.deployments: DeploymentAggregator = self._aggregators[ResourceKind.DEPLOYMENT]  # type: ignore[assignment]
        self.replica_sets: ReplicaSetAggregator = self._aggregators[ResourceKind.REPLICA_SET]  # type: ignore[assignment]
        self.pods: PodAggregator = self._aggregators[ResourceKind.POD]  # type: ignore[assignment]

    def aggregator(self, kind: ResourceKind) -> ResourceAggregator[Any]:
        """The aggregator for ``kind``; events and quotas have none of their own."""
        try:
            return self._aggregators[kind]
        except KeyError:
            raise ValueError(f"{kind.value} is loaded as part of another kind") from None

    async def refresh_overview(self) -> tuple[LoadResult, LoadResult]:
        """Load namespaces and nodes concurrently; the two share no state."""
        namespaces, nodes = await asyncio.gather(
            self.namespaces.load(self.profile),
            self.nodes.load(self.profile),
        )
        logger.debug(
            "session.overview_refreshed",
            profile=self.profile.name,
            namespaces=namespaces.status.value,
            nodes=nodes.status.value,
        )
        return namespaces, nodes

    async def load_deployments(self, namespace: str | None = None) -> LoadResult:
        return await self.deployments.load(self.profile, scope=self._scope(namespace))

    async def load_replica_sets(self, namespace: str | None = None, deployment: str | None = None) -> LoadResult:
        return await self.replica_sets.load(self.profile, scope=self._scope(namespace), owner=deployment)

    async def load_pods(self, namespace: str | None = None, replica_set: str | None = None) -> LoadResult:
        return await self.pods.load(self.profile, scope=self._scope(namespace), owner=replica_set)

    def quota_for(self, namespace: str) -> ResourceQuotaStatus | None:
        return self.namespaces.snapshot.quotas.get(namespace)

    def events_for(self, node: str) -> tuple[Event, ...]:
        return self.nodes.snapshot.events.get(node, ())

    def ready_nodes(self) -> list[Node]:
        return [node for node in self.nodes.index.resources() if node.is_ready]

    @staticmethod
    def _scope(namespace: str | None) -> Scope | None:
        return Scope.namespace(namespace) if namespace else None
