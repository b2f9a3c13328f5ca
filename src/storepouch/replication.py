"""Continuous bidirectional replication between two document stores.

The controller follows each store's changes feed from a per-direction
checkpoint and writes the changed documents to the other store with their
revisions preserved, so both sides converge on the same winning revision.

Lifecycle is reported as typed :class:`ReplicationEvent` values:

* ``active`` -- replication (re)started moving documents
* ``change`` -- a batch was written in one direction
* ``paused`` -- caught up, or offline (``error`` set) and retrying
* ``denied`` -- the target refused a document (permissions)
* ``complete`` -- :meth:`ReplicationController.stop` finished the stream
* ``error`` -- an unexpected failure ended the stream
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from storepouch._constants import CHANGES_BATCH_LIMIT
from storepouch.exceptions import StoreError
from storepouch.stores.base import DocumentStore, Seq

_logger = logging.getLogger(__name__)

_DENIED_ERRORS = frozenset({"forbidden", "unauthorized"})


class ReplicationEventType(StrEnum):
    CHANGE = "change"
    PAUSED = "paused"
    ACTIVE = "active"
    DENIED = "denied"
    COMPLETE = "complete"
    ERROR = "error"


class Direction(StrEnum):
    PUSH = "push"
    PULL = "pull"


class ReplicationEvent(BaseModel):
    """A replication lifecycle notification."""

    model_config = ConfigDict(frozen=True)

    type: ReplicationEventType
    direction: Direction | None = None
    docs_read: int = 0
    docs_written: int = 0
    doc_ids: list[str] = Field(default_factory=list)
    error: str | None = None
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ReplicationController:
    """Live, retrying sync between ``local`` and ``remote``.

    Parameters
    ----------
    local, remote : DocumentStore
        The two stores kept in sync.
    poll_interval : float
        Seconds to idle once both changes feeds are drained.
    max_backoff : float
        Cap in seconds for the exponential reconnect delay while offline.
    on_event : callable, optional
        Invoked with every event; exceptions from it are logged and ignored.
    """

    def __init__(
        self,
        local: DocumentStore,
        remote: DocumentStore,
        *,
        poll_interval: float = 1.0,
        max_backoff: float = 60.0,
        batch_limit: int = CHANGES_BATCH_LIMIT,
        on_event: Callable[[ReplicationEvent], None] | None = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self._poll_interval = poll_interval
        self._max_backoff = max(max_backoff, poll_interval)
        self._batch_limit = batch_limit
        self._on_event = on_event
        self._subscribers: list[asyncio.Queue[ReplicationEvent]] = []
        self._checkpoints: dict[Direction, Seq] = {Direction.PUSH: 0, Direction.PULL: 0}
        # Revisions known to be present on each direction's target.
        self._known_revs: dict[Direction, dict[str, str]] = {Direction.PUSH: {}, Direction.PULL: {}}
        self._task: asyncio.Task[None] | None = None
        self._state: ReplicationEventType | None = None
        self._offline = False
        self.docs_written = 0
        self.error: BaseException | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def checkpoints(self) -> dict[Direction, Seq]:
        return dict(self._checkpoints)

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue[ReplicationEvent]:
        """Return a queue receiving every subsequent event."""
        queue: asyncio.Queue[ReplicationEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ReplicationEvent]) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(queue)

    def start(self) -> None:
        """Start the live replication task (no-op when already running)."""
        if self.running:
            return
        self._state = None
        self._offline = False
        self.error = None
        self._task = asyncio.create_task(self._run(), name="storepouch-replication")
        _logger.info("Replication started %s <-> %s", self.local.name, self.remote.name)

    async def stop(self) -> None:
        """Cancel the live task and emit ``complete``."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._emit(ReplicationEvent(type=ReplicationEventType.COMPLETE, docs_written=self.docs_written))
        _logger.info("Replication stopped docs_written=%d", self.docs_written)

    async def sync_once(self) -> int:
        """Replicate both directions until drained; return documents read.

        Store failures propagate; no lifecycle events are emitted.
        """
        total = 0
        while True:
            read = await self._cycle(emit=False)
            total += read
            if read == 0:
                return total

    async def _run(self) -> None:
        backoff = self._poll_interval
        try:
            while True:
                try:
                    read = await self._cycle(emit=True)
                except StoreError as exc:
                    if not self._offline:
                        self._offline = True
                        self._state = ReplicationEventType.PAUSED
                        self._emit(ReplicationEvent(type=ReplicationEventType.PAUSED, error=str(exc)))
                    _logger.warning("Replication offline, retrying in %.1fs: %s", backoff, exc)
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, self._max_backoff)
                    continue

                backoff = self._poll_interval
                if self._offline:
                    self._offline = False
                    self._state = ReplicationEventType.ACTIVE
                    self._emit(ReplicationEvent(type=ReplicationEventType.ACTIVE))
                if read:
                    continue
                if self._state is not ReplicationEventType.PAUSED:
                    self._state = ReplicationEventType.PAUSED
                    self._emit(ReplicationEvent(type=ReplicationEventType.PAUSED))
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.error = exc
            _logger.exception("Replication failed")
            self._emit(ReplicationEvent(type=ReplicationEventType.ERROR, error=str(exc)))

    async def _cycle(self, *, emit: bool) -> int:
        read = 0
        for direction in (Direction.PUSH, Direction.PULL):
            read += await self._replicate(direction, emit=emit)
        return read

    async def _replicate(self, direction: Direction, *, emit: bool) -> int:
        if direction is Direction.PUSH:
            source, target, reverse = self.local, self.remote, Direction.PULL
        else:
            source, target, reverse = self.remote, self.local, Direction.PUSH

        batch = await source.changes(self._checkpoints[direction], limit=self._batch_limit)
        if not batch.results:
            self._checkpoints[direction] = batch.last_seq
            return 0

        known = self._known_revs[direction]
        docs = [doc for doc in batch.results if known.get(str(doc.get("_id"))) != doc.get("_rev")]
        errors = await target.bulk_replicate(docs) if docs else []

        failed = {str(err.get("id")) for err in errors}
        written = [doc for doc in docs if str(doc.get("_id")) not in failed]
        for doc in written:
            # The source now holds what the target holds; skip echoing it back.
            self._known_revs[reverse][str(doc["_id"])] = str(doc["_rev"])
            known[str(doc["_id"])] = str(doc["_rev"])
        self._checkpoints[direction] = batch.last_seq
        self.docs_written += len(written)

        if emit:
            self._report(direction, len(batch.results), written, errors)
        return len(batch.results)

    def _report(self, direction: Direction, read: int, written: list[dict], errors: list[dict]) -> None:
        if written and self._state is not ReplicationEventType.ACTIVE:
            self._offline = False
            self._state = ReplicationEventType.ACTIVE
            self._emit(ReplicationEvent(type=ReplicationEventType.ACTIVE, direction=direction))

        for err in errors:
            if err.get("error") in _DENIED_ERRORS:
                self._emit(
                    ReplicationEvent(
                        type=ReplicationEventType.DENIED,
                        direction=direction,
                        doc_ids=[str(err.get("id"))],
                        error=str(err.get("reason") or err.get("error")),
                    )
                )
            else:
                _logger.warning("Replication %s rejected %s: %s", direction, err.get("id"), err.get("reason"))

        if written:
            self._emit(
                ReplicationEvent(
                    type=ReplicationEventType.CHANGE,
                    direction=direction,
                    docs_read=read,
                    docs_written=len(written),
                    doc_ids=[str(doc["_id"]) for doc in written],
                )
            )

    def _emit(self, event: ReplicationEvent) -> None:
        if event.type is ReplicationEventType.CHANGE:
            _logger.debug("Replication %s wrote %d docs", event.direction, event.docs_written)
        else:
            _logger.info("Replication %s%s", event.type, f": {event.error}" if event.error else "")

        if self._on_event is not None:
            try:
                self._on_event(event)
            except Exception:
                _logger.debug("on_event callback failed", exc_info=True)

        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                _logger.debug("Dropping replication event for a full subscriber queue")
