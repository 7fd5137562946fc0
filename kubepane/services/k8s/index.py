"""
Immutable resource indexes, the snapshots aggregators publish, and the channel
observers subscribe to.
"""
from __future__ import annotations

import enum
import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Generic, Iterable, Iterator, TypeVar

import structlog

from kubepane.schemas.kubernetes import (
    Event,
    KubeResource,
    Namespace,
    Node,
    ResourceKind,
    ResourceQuotaStatus,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=KubeResource)

# partition key of cluster-scoped kinds
CLUSTER_PARTITION = ""


class ResourceIndex(Mapping[str, tuple[T, ...]], Generic[T]):
    """Partition key -> resources, in insertion order, at most one entry per UID.

    Instances never change; :meth:`replace` returns a new index.
    """

    __slots__ = ("_partitions",)

    def __init__(self, partitions: Mapping[str, Iterable[T]] | None = None) -> None:
        self._partitions: Mapping[str, tuple[T, ...]] = MappingProxyType(
            {key: tuple(items) for key, items in (partitions or {}).items()}
        )

    def __getitem__(self, key: str) -> tuple[T, ...]:
        return self._partitions[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._partitions)

    def __len__(self) -> int:
        return len(self._partitions)

    def __repr__(self) -> str:
        sizes = {key: len(items) for key, items in self._partitions.items()}
        return f"ResourceIndex({sizes})"

    def resources(self, key: str | None = None) -> tuple[T, ...]:
        """Resources of one partition (empty when absent), or of every partition."""
        if key is not None:
            return self._partitions.get(key, ())
        return tuple(item for items in self._partitions.values() for item in items)

    def names(self, key: str | None = None) -> list[str]:
        return [item.name for item in self.resources(key)]

    def uids(self) -> frozenset[str]:
        return frozenset(item.uid for items in self._partitions.values() for item in items if item.uid)

    def replace(
        self, partitions: Mapping[str, Iterable[T]], owned_keys: Iterable[str] | None = None
    ) -> "ResourceIndex[T]":
        """
        Return a new index in which the owned partitions come from ``partitions``.

        Args:
            partitions: freshly loaded partitions
            owned_keys: keys the load was responsible for; ``None`` means every key.
                An owned key missing from ``partitions`` disappears from the result.
        """
        if owned_keys is None:
            return ResourceIndex(partitions)
        owned = set(owned_keys) | set(partitions)
        merged: dict[str, Iterable[T]] = {}
        for key, items in self._partitions.items():
            if key not in owned:
                merged[key] = items
            elif key in partitions:
                merged[key] = partitions[key]
        for key, items in partitions.items():
            merged.setdefault(key, items)
        return ResourceIndex(merged)


class IndexBuilder(Generic[T]):
    """Accumulates one load's resources per partition, suppressing duplicate UIDs."""

    def __init__(self, kind: ResourceKind) -> None:
        self.kind = kind
        self.dropped = 0
        self._partitions: dict[str, list[T]] = {}
        self._seen: dict[str, set[str]] = {}

    def add(self, key: str, resource: T) -> bool:
        uid = resource.uid
        if not uid:
            self.dropped += 1
            logger.warning("index.missing_uid", kind=self.kind.value, name=resource.name)
            return False
        seen = self._seen.setdefault(key, set())
        if uid in seen:
            return False
        seen.add(uid)
        self._partitions.setdefault(key, []).append(resource)
        return True

    def build(self) -> dict[str, tuple[T, ...]]:
        return {key: tuple(items) for key, items in self._partitions.items()}


@dataclass(frozen=True)
class AggregatorSnapshot(Generic[T]):
    index: ResourceIndex[T] = field(default_factory=ResourceIndex)
    generation: int = 0
    loaded_at: datetime | None = None


@dataclass(frozen=True)
class NamespaceSnapshot(AggregatorSnapshot[Namespace]):
    # at most one quota status per namespace
    quotas: Mapping[str, ResourceQuotaStatus] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class NodeSnapshot(AggregatorSnapshot[Node]):
    # node name -> events involving that node, deduplicated by UID
    events: Mapping[str, tuple[Event, ...]] = field(default_factory=lambda: MappingProxyType({}))


class LoadStatus(str, enum.Enum):
    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PhaseError:
    kind: ResourceKind
    message: str
    status: int | None = None


@dataclass(frozen=True)
class LoadResult(Generic[T]):
    """Outcome of one aggregator load.

    ``snapshot`` is the aggregator's current snapshot after the load: the new
    one for ``ok``/``partial``, the unchanged previous one otherwise.
    """

    status: LoadStatus
    snapshot: AggregatorSnapshot[T]
    errors: tuple[PhaseError, ...] = ()
    dropped: int = 0
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status in (LoadStatus.OK, LoadStatus.PARTIAL)


Subscriber = Callable[[Any], "Awaitable[None] | None"]


class SnapshotChannel:
    """Fan-out of published snapshots to subscribers.

    Callbacks may be plain functions or coroutine functions. A callback that
    raises is logged and unsubscribed.
    """

    def __init__(self, name: str = "snapshots") -> None:
        self.name = name
        self._subscribers: list[Subscriber] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, snapshot: Any) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("snapshot.subscriber_failed", channel=self.name, error=str(exc))
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
