"""In-process document store with CouchDB revision semantics.

Used for ``memory://`` store URLs and as the reference adapter in tests.
Data lives only as long as the process.
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from storepouch.exceptions import ConflictError, NotFoundError, StoreError
from storepouch.stores.base import ChangesBatch, Doc, Seq, revision_generation, revision_wins

_logger = logging.getLogger(__name__)

_NAMED_STORES: dict[str, MemoryStore] = {}

_OPERATORS = frozenset({"$exists", "$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin"})


def _new_revision(body: Mapping[str, Any], previous: str | None) -> str:
    generation = revision_generation(previous) + 1
    digest = hashlib.md5(  # noqa: S324
        json.dumps([previous, body], sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    ).hexdigest()
    return f"{generation}-{digest}"


def _lookup(doc: Mapping[str, Any], path: str) -> tuple[bool, Any]:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _match_condition(present: bool, value: Any, condition: Any) -> bool:
    if not isinstance(condition, Mapping):
        return present and value == condition
    for op, operand in condition.items():
        if op not in _OPERATORS:
            raise StoreError(f"Unsupported selector operator {op!r}", status_code=400, endpoint="_find")
        if op == "$exists":
            if present != bool(operand):
                return False
            continue
        if not present:
            return False
        try:
            if op == "$eq" and value != operand:
                return False
            if op == "$ne" and value == operand:
                return False
            if op == "$gt" and not value > operand:
                return False
            if op == "$gte" and not value >= operand:
                return False
            if op == "$lt" and not value < operand:
                return False
            if op == "$lte" and not value <= operand:
                return False
            if op == "$in" and value not in operand:
                return False
            if op == "$nin" and value in operand:
                return False
        except TypeError:
            # Mango never matches across incomparable types.
            return False
    return True


def match_selector(doc: Mapping[str, Any], selector: Mapping[str, Any]) -> bool:
    """Evaluate the field-level subset of a Mango selector against *doc*."""
    if "$and" in selector:
        if not all(match_selector(doc, sub) for sub in selector["$and"]):
            return False
    for path, condition in selector.items():
        if path == "$and":
            continue
        present, value = _lookup(doc, path)
        if not _match_condition(present, value, condition):
            return False
    return True


class MemoryStore:
    """Revisioned key/document store held in memory.

    Mirrors the CouchDB behaviours the engines rely on: ``_rev`` checks on
    update and delete, tombstones for deleted ids, a sequence-numbered
    changes feed, and ``new_edits=false`` style replication writes.
    """

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._docs: dict[str, Doc] = {}
        self._doc_seq: dict[str, int] = {}
        self._seq = 0
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"MemoryStore({self.name!r}, docs={len(self)})"

    def __len__(self) -> int:
        return sum(1 for doc in self._docs.values() if not doc.get("_deleted"))

    @property
    def update_seq(self) -> int:
        return self._seq

    def _record(self, doc: Doc) -> None:
        self._seq += 1
        self._docs[doc["_id"]] = doc
        self._doc_seq[doc["_id"]] = self._seq

    def _live(self, doc_id: str) -> Doc | None:
        doc = self._docs.get(doc_id)
        if doc is None or doc.get("_deleted"):
            return None
        return doc

    def _write(self, doc_id: str, body: Mapping[str, Any], supplied_rev: str | None) -> Doc:
        existing = self._docs.get(doc_id)
        current_rev = existing.get("_rev") if existing is not None else None
        deleted = existing is None or bool(existing.get("_deleted"))
        if deleted:
            # Recreating a deleted id needs no revision, or the tombstone's.
            if supplied_rev is not None and supplied_rev != current_rev:
                raise ConflictError(f"Document update conflict: {doc_id}", status_code=409, endpoint=doc_id)
        elif supplied_rev != current_rev:
            raise ConflictError(f"Document update conflict: {doc_id}", status_code=409, endpoint=doc_id)

        content = {k: copy.deepcopy(v) for k, v in body.items() if k not in {"_id", "_rev"}}
        rev = _new_revision(content, current_rev)
        stored: Doc = {"_id": doc_id, "_rev": rev, **content}
        self._record(stored)
        return {"ok": True, "id": doc_id, "rev": rev}

    async def get(self, doc_id: str) -> Doc:
        await asyncio.sleep(0)
        doc = self._live(doc_id)
        if doc is None:
            reason = "deleted" if doc_id in self._docs else "missing"
            raise NotFoundError(f"not_found: {reason}", status_code=404, endpoint=doc_id)
        return copy.deepcopy(doc)

    async def put(self, doc: Mapping[str, Any]) -> Doc:
        doc_id = doc.get("_id")
        if not doc_id:
            raise StoreError("Document must have an _id", status_code=400, endpoint="put")
        await asyncio.sleep(0)
        async with self._lock:
            return self._write(str(doc_id), doc, doc.get("_rev"))

    async def post(self, doc: Mapping[str, Any]) -> Doc:
        doc_id = str(doc.get("_id") or uuid.uuid4().hex)
        await asyncio.sleep(0)
        async with self._lock:
            if self._live(doc_id) is not None:
                raise ConflictError(f"Document update conflict: {doc_id}", status_code=409, endpoint=doc_id)
            return self._write(doc_id, doc, doc.get("_rev"))

    async def remove(self, doc: Mapping[str, Any]) -> Doc:
        doc_id = doc.get("_id")
        if not doc_id:
            raise StoreError("Document must have an _id", status_code=400, endpoint="remove")
        await asyncio.sleep(0)
        async with self._lock:
            if self._live(str(doc_id)) is None:
                raise NotFoundError("not_found: missing", status_code=404, endpoint=str(doc_id))
            return self._write(str(doc_id), {"_deleted": True}, doc.get("_rev"))

    async def changes(self, since: Seq = 0, *, limit: int = 100) -> ChangesBatch:
        start = int(since or 0)
        pending = sorted(
            (seq, doc_id) for doc_id, seq in self._doc_seq.items() if seq > start
        )[:limit]
        if not pending:
            return ChangesBatch(results=[], last_seq=start)
        results = [copy.deepcopy(self._docs[doc_id]) for _, doc_id in pending]
        return ChangesBatch(results=results, last_seq=pending[-1][0])

    async def bulk_replicate(self, docs: Sequence[Mapping[str, Any]]) -> list[Doc]:
        errors: list[Doc] = []
        async with self._lock:
            for doc in docs:
                doc_id = doc.get("_id")
                rev = doc.get("_rev")
                if not doc_id or not rev:
                    errors.append({"id": doc_id, "error": "bad_request", "reason": "missing _id or _rev"})
                    continue
                existing = self._docs.get(str(doc_id))
                current_rev = existing.get("_rev") if existing is not None else None
                if current_rev == rev or not revision_wins(str(rev), current_rev):
                    continue
                self._record(copy.deepcopy(dict(doc)))
        if errors:
            _logger.debug("Replication write to %s rejected %d docs", self.name, len(errors))
        return errors

    async def find(self, selector: Mapping[str, Any]) -> list[Doc]:
        await asyncio.sleep(0)
        return [
            copy.deepcopy(doc)
            for doc in self._docs.values()
            if not doc.get("_deleted") and match_selector(doc, selector)
        ]

    async def close(self) -> None:
        return None


def get_memory_store(name: str) -> MemoryStore:
    """Return the process-wide memory store called *name*, creating it on first use."""
    store = _NAMED_STORES.get(name)
    if store is None:
        store = MemoryStore(name)
        _NAMED_STORES[name] = store
    return store


def reset_memory_stores() -> None:
    """Forget every named memory store."""
    _NAMED_STORES.clear()
