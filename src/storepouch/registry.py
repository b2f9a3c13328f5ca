"""Registry of known clients with idempotent add/remove."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator

from storepouch.identity import DocumentFactory
from storepouch.models.client import ClientRecord
from storepouch.models.documents import Document, WriteResult, client_document_id
from storepouch.stores.base import DocumentStore

_logger = logging.getLogger(__name__)

Writer = Callable[[DocumentStore, Document], Awaitable[WriteResult]]
Remover = Callable[[DocumentStore, str], Awaitable[bool]]


class ClientRegistry:
    """In-memory set of client records, persisted as ``client`` documents.

    The registry is keyed by uid and never holds duplicates. ``records``
    is shared with the :class:`DocumentFactory` so status documents embed
    the current client list.
    """

    def __init__(
        self,
        store: DocumentStore,
        factory: DocumentFactory,
        *,
        write: Writer,
        delete: Remover,
        seed: Iterable[ClientRecord] = (),
    ) -> None:
        self._store = store
        self._factory = factory
        self._write = write
        self._delete = delete
        self.records: list[ClientRecord] = factory.components
        for record in seed:
            if record.uid not in self:
                self.records.append(record)

    def __contains__(self, uid: object) -> bool:
        return any(record.uid == uid for record in self.records)

    def __iter__(self) -> Iterator[ClientRecord]:
        return iter(list(self.records))

    def __len__(self) -> int:
        return len(self.records)

    def get(self, uid: str) -> ClientRecord | None:
        for record in self.records:
            if record.uid == uid:
                return record
        return None

    async def add(self, record: ClientRecord) -> bool:
        """Register *record*; returns ``False`` if its uid was already known.

        The client document is written before the record joins the
        registry, so a failed write leaves the registry unchanged.
        """
        if record.uid in self:
            _logger.debug("Client %s already registered", record.uid)
            return False
        await self._write(self._store, self._factory.client(record))
        if record.uid in self:
            # Registered concurrently while the write was in flight.
            return False
        self.records.append(record)
        _logger.info("Client %s registered", record.uid)
        return True

    async def remove(self, uid: str) -> bool:
        """Unregister *uid*; returns ``False`` if it was not registered."""
        record = self.get(uid)
        if record is None:
            _logger.debug("Client %s not registered", uid)
            return False
        await self._delete(self._store, client_document_id(uid))
        if record in self.records:
            self.records.remove(record)
        _logger.info("Client %s removed", uid)
        return True
