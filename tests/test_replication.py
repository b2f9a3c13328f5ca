from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from storepouch.exceptions import StoreError
from storepouch.replication import Direction, ReplicationController, ReplicationEvent, ReplicationEventType
from storepouch.stores.base import ChangesBatch, Seq
from storepouch.stores.memory import MemoryStore


class _FlakyStore(MemoryStore):
    """Changes feed fails while ``offline`` is set."""

    def __init__(self, name: str, *, offline: bool = False) -> None:
        super().__init__(name)
        self.offline = offline

    async def changes(self, since: Seq = 0, *, limit: int = 100) -> ChangesBatch:
        if self.offline:
            raise StoreError("connection refused", endpoint="_changes")
        return await super().changes(since, limit=limit)


class _ReadOnlyStore(MemoryStore):
    async def bulk_replicate(self, docs: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return [{"id": doc["_id"], "error": "forbidden", "reason": "read only"} for doc in docs]


class _BrokenStore(MemoryStore):
    async def changes(self, since: Seq = 0, *, limit: int = 100) -> ChangesBatch:
        raise RuntimeError("corrupted changes feed")


async def _next_event(
    queue: asyncio.Queue[ReplicationEvent],
    event_type: ReplicationEventType,
    *,
    timeout: float = 2.0,
) -> ReplicationEvent:
    async def _wait() -> ReplicationEvent:
        while True:
            event = await queue.get()
            if event.type is event_type:
                return event

    return await asyncio.wait_for(_wait(), timeout)


@pytest.mark.asyncio
async def test_sync_once_converges_both_directions() -> None:
    local, remote = MemoryStore("local"), MemoryStore("remote")
    await local.post({"_id": "from-local", "v": 1})
    await remote.post({"_id": "from-remote", "v": 2})

    read = await ReplicationController(local, remote).sync_once()

    assert read >= 2
    for doc_id in ("from-local", "from-remote"):
        assert (await local.get(doc_id)) == (await remote.get(doc_id))


@pytest.mark.asyncio
async def test_concurrent_edits_converge_on_same_winner() -> None:
    local, remote = MemoryStore("local"), MemoryStore("remote")
    await local.post({"_id": "shared", "side": "local"})
    await remote.post({"_id": "shared", "side": "remote"})

    await ReplicationController(local, remote).sync_once()

    local_doc, remote_doc = await local.get("shared"), await remote.get("shared")
    assert local_doc["_rev"] == remote_doc["_rev"]
    assert local_doc["side"] == remote_doc["side"]


@pytest.mark.asyncio
async def test_deletions_replicate() -> None:
    local, remote = MemoryStore("local"), MemoryStore("remote")
    controller = ReplicationController(local, remote)
    created = await local.post({"_id": "doomed"})
    await controller.sync_once()

    await local.remove({"_id": "doomed", "_rev": created["rev"]})
    await controller.sync_once()

    assert len(remote) == 0


@pytest.mark.asyncio
async def test_replicated_documents_are_not_echoed_back() -> None:
    local, remote = MemoryStore("local"), MemoryStore("remote")
    controller = ReplicationController(local, remote)
    await local.post({"_id": "a"})

    await controller.sync_once()
    seq = local.update_seq
    await controller.sync_once()

    assert local.update_seq == seq
    assert controller.checkpoints[Direction.PUSH] == seq


@pytest.mark.asyncio
async def test_live_sync_emits_change_and_complete() -> None:
    local, remote = MemoryStore("local"), MemoryStore("remote")
    seen: list[ReplicationEvent] = []
    controller = ReplicationController(local, remote, poll_interval=0.01, on_event=seen.append)
    queue = controller.subscribe()
    controller.start()

    await local.post({"_id": "live", "v": 1})
    change = await _next_event(queue, ReplicationEventType.CHANGE)

    assert change.direction is Direction.PUSH
    assert change.doc_ids == ["live"]
    assert (await remote.get("live"))["v"] == 1

    await controller.stop()
    assert not controller.running
    assert seen[-1].type is ReplicationEventType.COMPLETE
    assert {e.type for e in seen} >= {ReplicationEventType.ACTIVE, ReplicationEventType.CHANGE}


@pytest.mark.asyncio
async def test_live_sync_pauses_while_offline_and_resumes() -> None:
    local, remote = MemoryStore("local"), _FlakyStore("remote", offline=True)
    controller = ReplicationController(local, remote, poll_interval=0.01, max_backoff=0.02)
    queue = controller.subscribe()
    controller.start()

    paused = await _next_event(queue, ReplicationEventType.PAUSED)
    assert paused.error is not None
    assert controller.running

    await remote.post({"_id": "queued-remotely"})
    remote.offline = False
    await _next_event(queue, ReplicationEventType.ACTIVE)
    await _next_event(queue, ReplicationEventType.CHANGE)

    assert (await local.get("queued-remotely"))["_id"] == "queued-remotely"
    await controller.stop()


@pytest.mark.asyncio
async def test_rejected_documents_emit_denied() -> None:
    local, remote = MemoryStore("local"), _ReadOnlyStore("remote")
    controller = ReplicationController(local, remote, poll_interval=0.01)
    queue = controller.subscribe()
    await local.post({"_id": "secret"})
    controller.start()

    denied = await _next_event(queue, ReplicationEventType.DENIED)

    assert denied.doc_ids == ["secret"]
    assert denied.error == "read only"
    await controller.stop()


@pytest.mark.asyncio
async def test_unexpected_failure_emits_error_and_ends_stream() -> None:
    controller = ReplicationController(_BrokenStore("local"), MemoryStore("remote"), poll_interval=0.01)
    queue = controller.subscribe()
    controller.start()

    error = await _next_event(queue, ReplicationEventType.ERROR)

    assert error.error == "corrupted changes feed"
    await asyncio.sleep(0)
    assert not controller.running
    assert isinstance(controller.error, RuntimeError)


@pytest.mark.asyncio
async def test_failing_observer_does_not_stop_replication() -> None:
    def _explode(_event: ReplicationEvent) -> None:
        raise RuntimeError("observer bug")

    local, remote = MemoryStore("local"), MemoryStore("remote")
    controller = ReplicationController(local, remote, poll_interval=0.01, on_event=_explode)
    queue = controller.subscribe()
    controller.start()
    await local.post({"_id": "a"})

    await _next_event(queue, ReplicationEventType.CHANGE)
    assert controller.running
    await controller.stop()
