"""Upsert and delete protocol against a revisioned document store.

Both engines look the document up before writing so that the write branch
is always decided from the store's current state:

* ``upsert`` -- found: copy the fetched ``_rev`` and ``put``; missing:
  ``post``. The caller's ``_rev`` is never trusted.
* ``remove`` -- found: ``remove`` the fetched revision; missing: success.

Any failure other than :class:`NotFoundError` on lookup propagates
unchanged. Two concurrent upserts of the same id race between lookup and
write; the store's revision check rejects the loser with
:class:`ConflictError`. :class:`KeyedLocks` and :func:`upsert_with_retry`
are available for callers that want to close or absorb that window.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

from storepouch.exceptions import ConflictError, NotFoundError, StoreError
from storepouch.models.documents import Document, WriteResult
from storepouch.stores.base import DocumentStore

_logger = logging.getLogger(__name__)


def _to_wire(doc: Document | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(doc, Document):
        body = doc.to_wire()
    else:
        body = dict(doc)
    body.pop("_rev", None)
    if not body.get("_id"):
        raise ValueError("Document must have an _id")
    return body


def _write_result(response: Mapping[str, Any] | None, doc_id: str, *, created: bool) -> WriteResult:
    if not isinstance(response, Mapping) or not response.get("rev"):
        raise StoreError(f"Write of {doc_id} returned no revision", endpoint=doc_id)
    return WriteResult(id=str(response.get("id") or doc_id), rev=str(response["rev"]), created=created)


async def upsert(store: DocumentStore, doc: Document | Mapping[str, Any]) -> WriteResult:
    """Create *doc* if absent, else update it in place.

    Raises
    ------
    ConflictError
        Another writer updated the document between lookup and write.
    StoreError
        Lookup (other than not-found) or write failed.
    """
    body = _to_wire(doc)
    doc_id = str(body["_id"])

    try:
        current = await store.get(doc_id)
    except NotFoundError:
        _logger.debug("upsert %s on %s: create", doc_id, store.name)
        response = await store.post(body)
        return _write_result(response, doc_id, created=True)

    body["_rev"] = current["_rev"]
    _logger.debug("upsert %s on %s: update rev=%s", doc_id, store.name, current["_rev"])
    response = await store.put(body)
    return _write_result(response, doc_id, created=False)


async def remove(store: DocumentStore, doc_id: str) -> bool:
    """Delete *doc_id*; deleting an absent document succeeds.

    Returns ``True`` when a document was deleted, ``False`` when there was
    nothing to delete.
    """
    try:
        current = await store.get(doc_id)
    except NotFoundError:
        _logger.debug("remove %s on %s: already absent", doc_id, store.name)
        return False
    await store.remove(current)
    _logger.debug("remove %s on %s: deleted rev=%s", doc_id, store.name, current.get("_rev"))
    return True


async def upsert_with_retry(
    store: DocumentStore,
    doc: Document | Mapping[str, Any],
    *,
    attempts: int = 3,
    backoff: float = 0.1,
) -> WriteResult:
    """Run :func:`upsert`, repeating the lookup and write on conflict.

    Waits ``backoff * attempt`` seconds between attempts and re-raises the
    last :class:`ConflictError` once *attempts* are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return await upsert(store, doc)
        except ConflictError:
            if attempt == attempts:
                raise
            _logger.debug("upsert conflict attempt=%d/%d", attempt, attempts)
            if backoff > 0:
                await asyncio.sleep(backoff * attempt)
    raise AssertionError("unreachable")  # pragma: no cover


class KeyedLocks:
    """One :class:`asyncio.Lock` per document id, dropped when unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]
