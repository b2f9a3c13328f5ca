from __future__ import annotations

import asyncio
from typing import Any

import pytest

from storepouch.engine import KeyedLocks, remove, upsert, upsert_with_retry
from storepouch.exceptions import ConflictError, NotFoundError, StoreError
from storepouch.models.documents import DataDocument
from storepouch.stores.memory import MemoryStore


def _data(uid: str, **payload: Any) -> DataDocument:
    return DataDocument(id=uid, uid=uid, serial="SN-1", payload=payload)


class _UnavailableStore(MemoryStore):
    """Lookups fail as if the store were offline."""

    def __init__(self) -> None:
        super().__init__("unavailable")
        self.writes = 0

    async def get(self, doc_id: str) -> dict[str, Any]:
        raise StoreError("connection refused", status_code=503, endpoint=doc_id)

    async def post(self, doc: Any) -> dict[str, Any]:
        self.writes += 1
        return await super().post(doc)


class _RacingStore(MemoryStore):
    """Another writer updates the document right after each of the first *races* lookups."""

    def __init__(self, races: int = 1) -> None:
        super().__init__("racing")
        self.races = races

    async def get(self, doc_id: str) -> dict[str, Any]:
        current = await super().get(doc_id)
        if self.races > 0:
            self.races -= 1
            await super().put({**current, "payload": {"from": "other-writer"}})
        return current


@pytest.mark.asyncio
async def test_upsert_creates_then_updates_in_place() -> None:
    store = MemoryStore("engine")

    created = await upsert(store, _data("rec-1", v=1))
    assert created.created is True
    assert created.id == "rec-1"
    assert created.rev.startswith("1-")

    updated = await upsert(store, _data("rec-1", v=2))
    assert updated.created is False
    assert updated.rev.startswith("2-")
    assert updated.rev != created.rev

    stored = await store.get("rec-1")
    assert stored["_id"] == "rec-1"
    assert stored["_rev"] == updated.rev
    assert stored["payload"] == {"v": 2}
    assert len(store) == 1


@pytest.mark.asyncio
async def test_upsert_ignores_caller_supplied_revision() -> None:
    store = MemoryStore("engine")
    await upsert(store, _data("rec-1", v=1))

    stale = _data("rec-1", v=2).model_copy(update={"rev": "1-not-the-current-rev"})
    result = await upsert(store, stale)

    assert result.created is False
    assert (await store.get("rec-1"))["payload"] == {"v": 2}


@pytest.mark.asyncio
async def test_upsert_accepts_raw_mappings() -> None:
    store = MemoryStore("engine")

    result = await upsert(store, {"_id": "raw", "_rev": "9-bogus", "type": "data", "uid": "raw"})

    assert result.created is True
    assert result.rev.startswith("1-")


@pytest.mark.asyncio
async def test_upsert_requires_an_id() -> None:
    with pytest.raises(ValueError):
        await upsert(MemoryStore("engine"), {"type": "data"})


@pytest.mark.asyncio
async def test_store_rejects_stale_revision() -> None:
    store = MemoryStore("engine")
    first = await upsert(store, _data("rec-1", v=1))
    await upsert(store, _data("rec-1", v=2))

    with pytest.raises(ConflictError) as exc_info:
        await store.put({**_data("rec-1", v=3).to_wire(), "_rev": first.rev})

    assert exc_info.value.status_code == 409
    assert (await store.get("rec-1"))["payload"] == {"v": 2}


@pytest.mark.asyncio
async def test_lookup_failure_is_not_treated_as_missing() -> None:
    store = _UnavailableStore()

    with pytest.raises(StoreError) as exc_info:
        await upsert(store, _data("rec-1", v=1))

    assert not isinstance(exc_info.value, NotFoundError)
    assert exc_info.value.status_code == 503
    assert store.writes == 0


@pytest.mark.asyncio
async def test_conflict_between_lookup_and_write_is_surfaced() -> None:
    store = _RacingStore()
    await store.post(_data("rec-1", v=1).to_wire())

    with pytest.raises(ConflictError):
        await upsert(store, _data("rec-1", v=2))

    assert (await store.get("rec-1"))["payload"] == {"from": "other-writer"}


@pytest.mark.asyncio
async def test_upsert_with_retry_recovers_from_conflict() -> None:
    store = _RacingStore(races=2)
    await store.post(_data("rec-1", v=1).to_wire())

    result = await upsert_with_retry(store, _data("rec-1", v=2), attempts=3, backoff=0)

    assert result.rev.startswith("4-")
    assert (await store.get("rec-1"))["payload"] == {"v": 2}


@pytest.mark.asyncio
async def test_upsert_with_retry_gives_up_after_attempts() -> None:
    store = _RacingStore(races=5)
    await store.post(_data("rec-1", v=1).to_wire())

    with pytest.raises(ConflictError):
        await upsert_with_retry(store, _data("rec-1", v=2), attempts=2, backoff=0)


@pytest.mark.asyncio
async def test_remove_is_idempotent() -> None:
    store = MemoryStore("engine")
    await upsert(store, _data("rec-1", v=1))

    assert await remove(store, "rec-1") is True
    assert await remove(store, "rec-1") is False

    with pytest.raises(NotFoundError):
        await store.get("rec-1")


@pytest.mark.asyncio
async def test_remove_absent_document_succeeds() -> None:
    assert await remove(MemoryStore("engine"), "never-written") is False


@pytest.mark.asyncio
async def test_remove_propagates_store_failures() -> None:
    with pytest.raises(StoreError):
        await remove(_UnavailableStore(), "rec-1")


@pytest.mark.asyncio
async def test_recreate_after_remove_takes_create_branch() -> None:
    store = MemoryStore("engine")
    await upsert(store, _data("rec-1", v=1))
    await remove(store, "rec-1")

    result = await upsert(store, _data("rec-1", v=2))

    assert result.created is True
    assert result.rev.startswith("3-")


@pytest.mark.asyncio
async def test_concurrent_upserts_of_new_id_race_without_locks() -> None:
    store = MemoryStore("engine")

    results = await asyncio.gather(
        upsert(store, _data("shared", n=1)),
        upsert(store, _data("shared", n=2)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ConflictError) for r in results) == 1


@pytest.mark.asyncio
async def test_keyed_locks_serialize_upserts_of_same_id() -> None:
    store = MemoryStore("engine")
    locks = KeyedLocks()

    async def guarded(n: int) -> bool:
        async with locks.hold("shared"):
            return (await upsert(store, _data("shared", n=n))).created

    created = await asyncio.gather(guarded(1), guarded(2))

    assert created == [True, False]
    assert (await store.get("shared"))["payload"] == {"n": 2}
    assert len(locks) == 0
