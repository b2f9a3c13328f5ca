"""High-level async client persisting status and data documents."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from storepouch import engine
from storepouch._constants import LOCAL_SELECTOR, REMOTE_SELECTOR
from storepouch._redact import redact_url
from storepouch.config import StoreConfig
from storepouch.exceptions import ConfigError, NotFoundError, StorepouchError
from storepouch.heartbeat import HeartbeatHandle, HeartbeatScheduler
from storepouch.identity import DocumentFactory
from storepouch.models.client import ClientRecord
from storepouch.models.documents import (
    ClientDocument,
    DataDocument,
    Document,
    StatusDocument,
    WriteResult,
    parse_document,
)
from storepouch.models.query import WhereFilter
from storepouch.registry import ClientRegistry
from storepouch.replication import ReplicationController, ReplicationEvent
from storepouch.snapshot import HostSnapshotProvider, SnapshotProvider
from storepouch.stores import DocumentStore, open_store

_logger = logging.getLogger(__name__)

AnyDoc = StatusDocument | DataDocument | ClientDocument


class StorePouch:
    """Async client for the local (and optional remote) document store.

    Usage::

        async with StorePouch(StoreConfig(storeurl="memory://agent")) as pouch:
            await pouch.save({"temperature": 21}, "sensor-1")
            handle = await pouch.heartbeat(interval_ms=30_000)

    A remote store is opened only when ``config.remote`` is set; continuous
    replication runs only when ``config.sync`` is set as well.
    """

    def __init__(
        self,
        config: StoreConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        snapshot_provider: SnapshotProvider | None = None,
        on_replication_event: Callable[[ReplicationEvent], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._on_replication_event = on_replication_event
        self._factory = DocumentFactory(
            [],
            config.serial,
            config.timezone,
            snapshot_provider or HostSnapshotProvider(),
        )
        self._locks = engine.KeyedLocks()
        self._local: DocumentStore | None = None
        self._remote: DocumentStore | None = None
        self._adhoc: dict[str, DocumentStore] = {}
        self._replication: ReplicationController | None = None
        self._registry: ClientRegistry | None = None
        self._heartbeats = HeartbeatScheduler(
            self._factory.status,
            write=self._locked_upsert,
            default_interval_ms=config.heartbeat_interval_ms,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StorePouch:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def open(self) -> None:
        """Open the configured stores and start replication when enabled.

        Calling it on an already open client does nothing.
        """
        if self._local is not None:
            return
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        try:
            self._local = await self._open(self._config.storeurl)
            if self._config.remote:
                self._remote = await self._open(self._config.remote)
                if self._config.sync:
                    self._replication = ReplicationController(
                        self._local,
                        self._remote,
                        poll_interval=self._config.replication_poll_interval,
                        max_backoff=self._config.replication_max_backoff,
                        on_event=self._on_replication_event,
                    )
                    self._replication.start()
        except BaseException:
            await self.close()
            raise
        self._registry = ClientRegistry(
            self._local,
            self._factory,
            write=self._locked_upsert,
            delete=self._locked_remove,
            seed=self._config.components,
        )

    async def close(self) -> None:
        """Stop background tasks and release the HTTP session."""
        self._heartbeats.stop()
        if self._replication is not None:
            await self._replication.stop()
            self._replication = None
        stores = [s for s in (self._local, self._remote, *self._adhoc.values()) if s is not None]
        for store in stores:
            await store.close()
        self._adhoc.clear()
        self._local = None
        self._remote = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _open(self, url: str) -> DocumentStore:
        return await open_store(url, http_session=self._http_session, timeout=self._config.request_timeout)

    def _require_local(self) -> DocumentStore:
        if self._local is None:
            raise StorepouchError("Client not initialized. Use 'async with StorePouch(...) as pouch:'")
        return self._local

    def _require_registry(self) -> ClientRegistry:
        if self._registry is None:
            raise StorepouchError("Client not initialized. Use 'async with StorePouch(...) as pouch:'")
        return self._registry

    async def _locked_upsert(self, store: DocumentStore, doc: Document | Mapping[str, Any]) -> WriteResult:
        doc_id = doc.id if isinstance(doc, Document) else str(doc.get("_id", ""))
        async with self._locks.hold(f"{store.name}:{doc_id}"):
            return await engine.upsert(store, doc)

    async def _locked_remove(self, store: DocumentStore, doc_id: str) -> bool:
        async with self._locks.hold(f"{store.name}:{doc_id}"):
            return await engine.remove(store, doc_id)

    # ------------------------------------------------------------------
    # Store handles
    # ------------------------------------------------------------------

    @property
    def local(self) -> DocumentStore:
        return self._require_local()

    @property
    def remote(self) -> DocumentStore | None:
        return self._remote

    @property
    def replication(self) -> ReplicationController | None:
        """The live replication controller, when ``remote`` and ``sync`` are set."""
        return self._replication

    async def resolve_store(self, selector: str | None = None) -> DocumentStore:
        """Map ``None``/``"local"``, ``"remote"`` or a URL to a store."""
        if not selector or selector == LOCAL_SELECTOR:
            return self._require_local()
        if selector == REMOTE_SELECTOR:
            if self._remote is None:
                raise ConfigError("no remote database configured")
            return self._remote
        store = self._adhoc.get(selector)
        if store is None:
            self._require_local()
            store = await self._open(selector)
            self._adhoc[selector] = store
            _logger.debug("Opened ad-hoc store %s", redact_url(selector))
        return store

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def new(self, uid: str) -> DataDocument:
        """Empty data document for *uid*."""
        return self._factory.new(uid)

    async def save_status(self, selector: str | None = None) -> WriteResult:
        """Capture a snapshot and upsert it as this boot's status document."""
        store = await self.resolve_store(selector)
        return await self._heartbeats.beat_once(store)

    async def heartbeat(
        self,
        selector: str | None = None,
        interval_ms: int | None = None,
    ) -> WriteResult | HeartbeatHandle:
        """Write status once (``interval_ms=0``) or every *interval_ms*.

        ``None`` uses ``config.heartbeat_interval_ms``. A new recurring
        heartbeat replaces the running one.
        """
        store = await self.resolve_store(selector)
        return await self._heartbeats.heartbeat(store, interval_ms)

    def stop_heartbeat(self) -> None:
        self._heartbeats.stop()

    @property
    def active_heartbeat(self) -> HeartbeatHandle | None:
        return self._heartbeats.active

    async def save(self, obj: Mapping[str, Any], uid: str, *, selector: str | None = None) -> WriteResult:
        """Upsert *obj* as the data document *uid*."""
        store = await self.resolve_store(selector)
        return await self._locked_upsert(store, self._factory.data(obj, uid))

    async def update(self, obj: Mapping[str, Any], uid: str) -> WriteResult:
        """Replace the payload of an existing data document.

        Raises
        ------
        NotFoundError
            If *uid* does not exist; use :meth:`save` to create.
        """
        store = self._require_local()
        doc = self._factory.data(obj, uid)
        async with self._locks.hold(f"{store.name}:{doc.id}"):
            current = await store.get(doc.id)
            body = doc.to_wire()
            body["_rev"] = current["_rev"]
            response = await store.put(body)
        return WriteResult(id=doc.id, rev=str(response["rev"]), created=False)

    async def get(self, doc_id: str, *, selector: str | None = None) -> AnyDoc:
        store = await self.resolve_store(selector)
        return parse_document(await store.get(doc_id))

    async def remove(self, doc_id: str, *, selector: str | None = None) -> bool:
        """Delete *doc_id*; returns ``False`` if it did not exist."""
        store = await self.resolve_store(selector)
        return await self._locked_remove(store, doc_id)

    async def exists(self, doc_id: str, *, selector: str | None = None) -> bool:
        store = await self.resolve_store(selector)
        try:
            await store.get(doc_id)
        except NotFoundError:
            return False
        return True

    async def where(
        self,
        where: WhereFilter | Mapping[str, Any] | None = None,
        *,
        selector: str | None = None,
    ) -> list[AnyDoc]:
        """Documents matching *where*, oldest ``updatedAt`` first."""
        if where is None:
            where = WhereFilter()
        elif not isinstance(where, WhereFilter):
            where = WhereFilter.model_validate(dict(where))
        store = await self.resolve_store(selector)
        rows = await store.find(where.to_selector())
        docs = [parse_document(row) for row in rows]
        return sorted(docs, key=lambda doc: (doc.updated_at, doc.id))

    async def replicate(self) -> int:
        """Run one catch-up replication pass in both directions.

        Returns the number of changed documents read. Works whether or not
        continuous sync is enabled.
        """
        if self._remote is None:
            raise ConfigError("no remote database configured")
        if self._replication is not None:
            return await self._replication.sync_once()
        controller = ReplicationController(self._require_local(), self._remote)
        return await controller.sync_once()

    # ------------------------------------------------------------------
    # Client registry
    # ------------------------------------------------------------------

    @property
    def clients(self) -> list[ClientRecord]:
        return list(self._require_registry())

    async def add_client(self, record: ClientRecord | Mapping[str, Any]) -> bool:
        """Register a client; adding a known uid is a no-op."""
        if not isinstance(record, ClientRecord):
            record = ClientRecord.model_validate(dict(record))
        return await self._require_registry().add(record)

    async def remove_client(self, uid: str) -> bool:
        """Unregister a client; removing an unknown uid is a no-op."""
        return await self._require_registry().remove(uid)
