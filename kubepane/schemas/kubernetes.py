"""Typed views of the Kubernetes objects kubepane aggregates.

Models parse the API's JSON form directly (camelCase keys). Fields the API may
omit carry an explicit default, documented per field; string enums the UI
branches on are closed enums with an ``UNKNOWN`` member that absorbs values
this client does not recognise.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Iterable

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)

# Kubernetes quantities ("500m", "1Gi", 2) normalised to their string form
Quantity = Annotated[str, BeforeValidator(lambda value: str(value))]


class _LenientEnum(str, Enum):
    @classmethod
    def _missing_(cls, value: object) -> Any:
        return cls.UNKNOWN  # type: ignore[attr-defined]


class ResourceKind(str, Enum):
    NAMESPACE = "Namespace"
    NODE = "Node"
    DEPLOYMENT = "Deployment"
    REPLICA_SET = "ReplicaSet"
    POD = "Pod"
    EVENT = "Event"
    RESOURCE_QUOTA = "ResourceQuota"

    @property
    def namespaced(self) -> bool:
        return self not in (ResourceKind.NAMESPACE, ResourceKind.NODE)


class NamespacePhase(_LenientEnum):
    ACTIVE = "Active"
    TERMINATING = "Terminating"
    UNKNOWN = "Unknown"


class NodeConditionType(_LenientEnum):
    READY = "Ready"
    MEMORY_PRESSURE = "MemoryPressure"
    DISK_PRESSURE = "DiskPressure"
    PID_PRESSURE = "PIDPressure"
    NETWORK_UNAVAILABLE = "NetworkUnavailable"
    UNKNOWN = "Unknown"


class ConditionStatus(_LenientEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class TaintEffect(_LenientEnum):
    NO_SCHEDULE = "NoSchedule"
    PREFER_NO_SCHEDULE = "PreferNoSchedule"
    NO_EXECUTE = "NoExecute"
    UNKNOWN = "Unknown"


class EventType(_LenientEnum):
    NORMAL = "Normal"
    WARNING = "Warning"
    UNKNOWN = "Unknown"


class PodPhase(_LenientEnum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class ContainerStateKind(str, Enum):
    RUNNING = "running"
    WAITING = "waiting"
    TERMINATED = "terminated"
    UNKNOWN = "unknown"


class KubeModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


class OwnerReference(KubeModel):
    kind: str = ""
    name: str = ""
    uid: str | None = None
    controller: bool = False


class ObjectReference(KubeModel):
    kind: str = ""
    name: str = ""
    namespace: str | None = None
    uid: str | None = None


class ObjectMeta(KubeModel):
    name: str | None = None
    # None for cluster-scoped objects, and for namespaced ones the API failed to fill in
    namespace: str | None = None
    uid: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReference] = Field(default_factory=list)
    creation_timestamp: datetime | None = None

    def is_owned_by(self, controller_name: str) -> bool:
        return any(ref.name == controller_name for ref in self.owner_references)

    @property
    def age(self) -> str:
        from kubepane.services.k8s.utils import calculate_age

        return calculate_age(self.creation_timestamp)


class KubeResource(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name or ""

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    @property
    def uid(self) -> str | None:
        return self.metadata.uid


# Namespaces


class NamespaceStatus(KubeModel):
    # absent phase means the namespace is live
    phase: NamespacePhase = NamespacePhase.ACTIVE


class Namespace(KubeResource):
    status: NamespaceStatus = Field(default_factory=NamespaceStatus)


class ResourceQuotaStatus(KubeModel):
    hard: dict[str, Quantity] = Field(default_factory=dict)
    used: dict[str, Quantity] = Field(default_factory=dict)


class ResourceQuota(KubeResource):
    status: ResourceQuotaStatus = Field(default_factory=ResourceQuotaStatus)


# Nodes


class NodeCondition(KubeModel):
    type: NodeConditionType = NodeConditionType.UNKNOWN
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str | None = None
    message: str | None = None
    last_heartbeat_time: datetime | None = None
    last_transition_time: datetime | None = None

    def is_desirable(self) -> bool:
        """Whether the condition reports a healthy node."""
        if self.type is NodeConditionType.READY:
            return self.status is ConditionStatus.TRUE
        if self.type is NodeConditionType.UNKNOWN:
            return True
        # the pressure / unavailable conditions
        return self.status is ConditionStatus.FALSE


class Taint(KubeModel):
    key: str = ""
    value: str | None = None
    effect: TaintEffect = TaintEffect.UNKNOWN
    time_added: datetime | None = None

    @property
    def description(self) -> str:
        return {
            TaintEffect.NO_EXECUTE: "Pods will be evicted from this node unless tolerated",
            TaintEffect.NO_SCHEDULE: "No new pods will be scheduled on this node",
            TaintEffect.PREFER_NO_SCHEDULE: "Pods will avoid getting scheduled on this node",
        }.get(self.effect, "")

    @property
    def shows_value(self) -> bool:
        # a bare "true" value carries no information
        return self.value is not None and self.value != "true"


class NodeSystemInfo(KubeModel):
    kubelet_version: str | None = None
    os_image: str | None = None
    kernel_version: str | None = None
    container_runtime_version: str | None = None
    architecture: str | None = None


class NodeSpec(KubeModel):
    unschedulable: bool = False
    taints: list[Taint] = Field(default_factory=list)


class NodeStatus(KubeModel):
    capacity: dict[str, Quantity] = Field(default_factory=dict)
    allocatable: dict[str, Quantity] = Field(default_factory=dict)
    conditions: list[NodeCondition] = Field(default_factory=list)
    node_info: NodeSystemInfo | None = None


class Node(KubeResource):
    spec: NodeSpec = Field(default_factory=NodeSpec)
    status: NodeStatus = Field(default_factory=NodeStatus)

    @property
    def is_ready(self) -> bool:
        return any(
            condition.type is NodeConditionType.READY and condition.status is ConditionStatus.TRUE
            for condition in self.status.conditions
        )


class Event(KubeResource):
    involved_object: ObjectReference = Field(default_factory=ObjectReference)
    reason: str = ""
    message: str = ""
    # events without a type are informational
    type: EventType = EventType.NORMAL
    count: int = 0
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None

    def involves(self, kind: ResourceKind, name: str) -> bool:
        return self.involved_object.kind == kind.value and self.involved_object.name == name


# Workloads


class DeploymentStatus(KubeModel):
    # every counter is 0 when the API omits it
    replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    updated_replicas: int = 0
    unavailable_replicas: int = 0


class Deployment(KubeResource):
    status: DeploymentStatus = Field(default_factory=DeploymentStatus)

    @property
    def is_available(self) -> bool:
        return self.status.available_replicas == self.status.replicas


class ReplicaSetStatus(KubeModel):
    replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0


class ReplicaSet(KubeResource):
    status: ReplicaSetStatus = Field(default_factory=ReplicaSetStatus)

    @property
    def is_available(self) -> bool:
        return self.status.available_replicas == self.status.replicas


class ContainerStateRunning(KubeModel):
    started_at: datetime | None = None


class ContainerStateWaiting(KubeModel):
    reason: str | None = None
    message: str | None = None


class ContainerStateTerminated(KubeModel):
    reason: str | None = None
    message: str | None = None
    exit_code: int | None = None
    finished_at: datetime | None = None


class ContainerState(KubeModel):
    running: ContainerStateRunning | None = None
    waiting: ContainerStateWaiting | None = None
    terminated: ContainerStateTerminated | None = None

    @property
    def kind(self) -> ContainerStateKind:
        if self.running is not None:
            return ContainerStateKind.RUNNING
        if self.waiting is not None:
            return ContainerStateKind.WAITING
        if self.terminated is not None:
            return ContainerStateKind.TERMINATED
        return ContainerStateKind.UNKNOWN


class ContainerStatus(KubeModel):
    name: str
    image: str = ""
    ready: bool = False
    restart_count: int = 0
    state: ContainerState = Field(default_factory=ContainerState)


class PodStatus(KubeModel):
    phase: PodPhase = PodPhase.UNKNOWN
    reason: str | None = None
    message: str | None = None
    container_statuses: list[ContainerStatus] = Field(default_factory=list)


class Pod(KubeResource):
    status: PodStatus = Field(default_factory=PodStatus)

    @property
    def status_text(self) -> str:
        text = self.status.phase.value
        if self.status.reason:
            text += f" ({self.status.reason})"
        return text

    @property
    def restart_count(self) -> int:
        return sum(container.restart_count for container in self.status.container_statuses)


RESOURCE_MODELS: dict[ResourceKind, type[KubeResource]] = {
    ResourceKind.NAMESPACE: Namespace,
    ResourceKind.NODE: Node,
    ResourceKind.DEPLOYMENT: Deployment,
    ResourceKind.REPLICA_SET: ReplicaSet,
    ResourceKind.POD: Pod,
    ResourceKind.EVENT: Event,
    ResourceKind.RESOURCE_QUOTA: ResourceQuota,
}


def parse_resources(kind: ResourceKind, payloads: Iterable[dict[str, Any]]) -> list[KubeResource]:
    """Validate raw API payloads, dropping the ones that do not fit the model."""
    model = RESOURCE_MODELS[kind]
    resources: list[KubeResource] = []
    for payload in payloads:
        try:
            resources.append(model.model_validate(payload))
        except ValidationError as exc:
            metadata = payload.get("metadata") if isinstance(payload, dict) else None
            name = metadata.get("name") if isinstance(metadata, dict) else None
            logger.warning("resource.malformed", kind=kind.value, name=name, errors=exc.error_count())
    return resources
