"""Tests for resource indexes and the snapshot channel."""

from __future__ import annotations

import pytest
import structlog

from kubepane.schemas.kubernetes import Deployment, ResourceKind
from kubepane.services.k8s.index import (
    AggregatorSnapshot,
    IndexBuilder,
    LoadResult,
    LoadStatus,
    ResourceIndex,
    SnapshotChannel,
)


def _deployment(name: str, namespace: str = "default", uid: str | None = None) -> Deployment:
    return Deployment.model_validate({"metadata": {"name": name, "namespace": namespace, "uid": uid or f"uid-{name}"}})


class TestResourceIndex:
    def test_mapping_interface(self) -> None:
        index = ResourceIndex({"a": [_deployment("x")], "b": []})

        assert list(index) == ["a", "b"]
        assert len(index) == 2
        assert index["a"][0].name == "x"
        assert index.get("missing") is None
        assert index.resources("missing") == ()
        assert index.names() == ["x"]
        assert index.uids() == frozenset({"uid-x"})

    def test_is_immutable(self) -> None:
        index = ResourceIndex({"a": [_deployment("x")]})
        with pytest.raises(TypeError):
            index["b"] = ()  # type: ignore[index]
        assert isinstance(index["a"], tuple)

    def test_replace_everything(self) -> None:
        index = ResourceIndex({"a": [_deployment("x")]})
        replaced = index.replace({"b": [_deployment("y", "b")]})

        assert list(replaced) == ["b"]
        assert list(index) == ["a"]

    def test_replace_owned_partition_keeps_the_rest(self) -> None:
        index = ResourceIndex({"a": [_deployment("x", "a")], "b": [_deployment("y", "b")]})

        replaced = index.replace({"a": [_deployment("z", "a")]}, owned_keys=["a"])

        assert list(replaced) == ["a", "b"]
        assert replaced.names("a") == ["z"]
        assert replaced.names("b") == ["y"]

    def test_owned_partition_without_items_disappears(self) -> None:
        index = ResourceIndex({"a": [_deployment("x", "a")], "b": [_deployment("y", "b")]})

        replaced = index.replace({}, owned_keys=["a"])

        assert list(replaced) == ["b"]

    def test_new_partition_is_appended(self) -> None:
        index = ResourceIndex({"a": [_deployment("x", "a")]})

        replaced = index.replace({"c": [_deployment("w", "c")]}, owned_keys=["c"])

        assert list(replaced) == ["a", "c"]


class TestIndexBuilder:
    def test_duplicate_uids_are_suppressed_per_partition(self) -> None:
        builder: IndexBuilder[Deployment] = IndexBuilder(ResourceKind.DEPLOYMENT)

        assert builder.add("a", _deployment("x", uid="1")) is True
        assert builder.add("a", _deployment("x-again", uid="1")) is False
        assert builder.add("b", _deployment("x", "b", uid="1")) is True

        built = builder.build()
        assert [d.name for d in built["a"]] == ["x"]
        assert len(built["b"]) == 1
        assert builder.dropped == 0

    def test_missing_uid_is_dropped_and_logged(self) -> None:
        builder: IndexBuilder[Deployment] = IndexBuilder(ResourceKind.DEPLOYMENT)
        anonymous = Deployment.model_validate({"metadata": {"name": "anon", "namespace": "a"}})

        with structlog.testing.capture_logs() as logs:
            assert builder.add("a", anonymous) is False

        assert builder.build() == {}
        assert builder.dropped == 1
        assert logs[0]["event"] == "index.missing_uid"
        assert logs[0]["log_level"] == "warning"


def test_load_result_success() -> None:
    snapshot = AggregatorSnapshot()
    assert LoadResult(LoadStatus.OK, snapshot).success is True
    assert LoadResult(LoadStatus.PARTIAL, snapshot).success is True
    assert LoadResult(LoadStatus.FAILED, snapshot).success is False
    assert LoadResult(LoadStatus.SKIPPED, snapshot).success is False


class TestSnapshotChannel:
    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self) -> None:
        channel = SnapshotChannel()
        received: list[tuple[str, object]] = []

        async def on_async(snapshot: object) -> None:
            received.append(("async", snapshot))

        channel.subscribe(lambda snapshot: received.append(("sync", snapshot)))
        channel.subscribe(on_async)

        await channel.publish("s1")

        assert received == [("sync", "s1"), ("async", "s1")]

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        channel = SnapshotChannel()
        received: list[object] = []
        unsubscribe = channel.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        await channel.publish("s1")

        assert received == []
        assert len(channel) == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_removed(self) -> None:
        channel = SnapshotChannel(name="Node")
        received: list[object] = []

        def broken(snapshot: object) -> None:
            raise RuntimeError("view gone")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        with structlog.testing.capture_logs() as logs:
            await channel.publish("s1")
        await channel.publish("s2")

        assert received == ["s1", "s2"]
        assert len(channel) == 1
        assert logs[0]["event"] == "snapshot.subscriber_failed"
        assert logs[0]["channel"] == "Node"
