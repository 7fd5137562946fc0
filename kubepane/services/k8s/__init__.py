"""
Kubernetes service package.

- client: cluster client capability (one client per load)
- index: immutable resource indexes, snapshots and the snapshot channel
- aggregators: per-kind loaders that publish snapshots
- session: the aggregators behind one profile
- utils: usage and display helpers
"""

from .utils import ResourceUsage, calculate_age, node_allocation, quota_usage, replica_usage

from .client import ClusterClient, KubernetesClusterClient, Scope, ScopeLevel

from .index import (
    AggregatorSnapshot,
    LoadResult,
    LoadStatus,
    NamespaceSnapshot,
    NodeSnapshot,
    PhaseError,
    ResourceIndex,
    SnapshotChannel,
)

from .aggregators import (
    AGGREGATORS,
    DeploymentAggregator,
    NamespaceAggregator,
    NodeAggregator,
    PodAggregator,
    ReplicaSetAggregator,
    ResourceAggregator,
)

from .session import ClusterSession

__all__ = [
    "AGGREGATORS",
    "AggregatorSnapshot",
    "ClusterClient",
    "ClusterSession",
    "DeploymentAggregator",
    "KubernetesClusterClient",
    "LoadResult",
    "LoadStatus",
    "NamespaceAggregator",
    "NamespaceSnapshot",
    "NodeAggregator",
    "NodeSnapshot",
    "PhaseError",
    "PodAggregator",
    "ReplicaSetAggregator",
    "ResourceAggregator",
    "ResourceIndex",
    "ResourceUsage",
    "Scope",
    "ScopeLevel",
    "SnapshotChannel",
    "calculate_age",
    "node_allocation",
    "quota_usage",
    "replica_usage",
]
