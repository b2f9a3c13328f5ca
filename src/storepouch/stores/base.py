"""Document store adapter interface and revision helpers."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

Doc = dict[str, Any]
Seq = int | str


@dataclass(frozen=True)
class ChangesBatch:
    """One page of a store's changes feed.

    ``results`` holds the current winning revision of every changed
    document, tombstones (``_deleted: true``) included.
    """

    results: list[Doc] = field(default_factory=list)
    last_seq: Seq = 0


class DocumentStore(Protocol):
    """Structural document store interface used by the engines.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production adapters (`MemoryStore`, `CouchStore`) concrete.

    ``get`` raises :class:`~storepouch.exceptions.NotFoundError` for a
    missing or deleted id. ``put``/``remove`` raise
    :class:`~storepouch.exceptions.ConflictError` on a stale ``_rev``.
    Write methods return ``{"ok": True, "id": ..., "rev": ...}``.
    """

    name: str

    async def get(self, doc_id: str) -> Doc: ...

    async def put(self, doc: Mapping[str, Any]) -> Doc: ...

    async def post(self, doc: Mapping[str, Any]) -> Doc: ...

    async def remove(self, doc: Mapping[str, Any]) -> Doc: ...

    async def changes(self, since: Seq = 0, *, limit: int = 100) -> ChangesBatch: ...

    async def bulk_replicate(self, docs: Sequence[Mapping[str, Any]]) -> list[Doc]:
        """Write *docs* keeping their revisions; return per-document errors only."""
        ...

    async def find(self, selector: Mapping[str, Any]) -> list[Doc]: ...

    async def close(self) -> None: ...


def revision_generation(rev: str | None) -> int:
    """Generation number of a ``N-hash`` revision token (0 when absent)."""
    if not rev:
        return 0
    head, _, _ = rev.partition("-")
    try:
        return int(head)
    except ValueError:
        return 0


def revision_wins(incoming: str, current: str | None) -> bool:
    """Deterministic winner: higher generation, then the greater revision string."""
    if current is None:
        return True
    return (revision_generation(incoming), incoming) > (revision_generation(current), current)
