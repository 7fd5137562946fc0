from kubepane.schemas.kubernetes import (
    RESOURCE_MODELS,
    Deployment,
    Event,
    KubeResource,
    Namespace,
    Node,
    Pod,
    ReplicaSet,
    ResourceKind,
    ResourceQuota,
    parse_resources,
)
from kubepane.schemas.profile import ConnectionProfilePayload, ConnectionProfileSummary

__all__ = [
    "RESOURCE_MODELS",
    "ConnectionProfilePayload",
    "ConnectionProfileSummary",
    "Deployment",
    "Event",
    "KubeResource",
    "Namespace",
    "Node",
    "Pod",
    "ReplicaSet",
    "ResourceKind",
    "ResourceQuota",
    "parse_resources",
]
