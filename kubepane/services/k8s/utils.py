"""
Usage and display helpers for the aggregated resources.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Mapping

from kubernetes.utils import parse_quantity

if TYPE_CHECKING:
    from kubepane.schemas.kubernetes import DeploymentStatus, ReplicaSetStatus, ResourceQuotaStatus


@dataclass(frozen=True)
class ResourceUsage:
    resource: str
    used: Decimal
    total: Decimal

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 0.0
        return float(self.used / self.total)

    @property
    def percent(self) -> int:
        return round(self.fraction * 100)


def calculate_age(creation_timestamp: datetime | None) -> str:
    """
    Compute a resource's age.

    Args:
        creation_timestamp: creation time; naive values are taken as UTC

    Returns:
        the largest whole unit, e.g. "5d", "3h", "10m", "30s"
    """
    if creation_timestamp is None:
        return "Unknown"
    if creation_timestamp.tzinfo is None:
        creation_timestamp = creation_timestamp.replace(tzinfo=timezone.utc)

    delta = datetime.now(tz=timezone.utc) - creation_timestamp
    if delta.days > 0:
        return f"{delta.days}d"
    elif delta.seconds // 3600 > 0:
        return f"{delta.seconds // 3600}h"
    elif delta.seconds // 60 > 0:
        return f"{delta.seconds // 60}m"
    else:
        return f"{max(delta.seconds, 0)}s"


def quota_usage(status: "ResourceQuotaStatus") -> list[ResourceUsage]:
    """
    One entry per resource the quota reports as used.

    A used resource without a hard limit gets a total of 0.
    """
    return [
        ResourceUsage(
            resource=resource,
            used=parse_quantity(used),
            total=parse_quantity(status.hard[resource]) if resource in status.hard else Decimal(0),
        )
        for resource, used in sorted(status.used.items())
    ]


def node_allocation(capacity: Mapping[str, str], allocatable: Mapping[str, str]) -> list[ResourceUsage]:
    """
    Share of each node resource reserved by the system (capacity minus allocatable).

    Resources with a zero capacity are skipped.
    """
    usages = []
    for resource, raw_capacity in sorted(capacity.items()):
        total = parse_quantity(raw_capacity)
        if total == 0:
            continue
        available = parse_quantity(allocatable[resource]) if resource in allocatable else total
        usages.append(ResourceUsage(resource=resource, used=total - available, total=total))
    return usages


def replica_usage(status: "DeploymentStatus | ReplicaSetStatus") -> list[ResourceUsage]:
    """Available, ready and (for deployments) updated replicas over desired replicas."""
    total = Decimal(status.replicas)
    usages = [
        ResourceUsage("available", Decimal(status.available_replicas), total),
        ResourceUsage("ready", Decimal(status.ready_replicas), total),
    ]
    updated = getattr(status, "updated_replicas", None)
    if updated is not None:
        usages.append(ResourceUsage("updated", Decimal(updated), total))
    return usages
