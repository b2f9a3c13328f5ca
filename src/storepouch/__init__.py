"""storepouch - Async persistence layer for device status reporting agents."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("storepouch")
except PackageNotFoundError:
    __version__ = "0+local"
from storepouch.client import StorePouch
from storepouch.config import StoreConfig
from storepouch.engine import KeyedLocks, remove, upsert, upsert_with_retry
from storepouch.exceptions import ConfigError, ConflictError, NotFoundError, StoreError, StorepouchError
from storepouch.heartbeat import HeartbeatHandle, HeartbeatScheduler
from storepouch.identity import DocumentFactory
from storepouch.models import (
    ClientDocument,
    ClientRecord,
    DataDocument,
    Document,
    StatusDocument,
    StatusSnapshot,
    WhereFilter,
    WriteResult,
    parse_document,
)
from storepouch.registry import ClientRegistry
from storepouch.replication import Direction, ReplicationController, ReplicationEvent, ReplicationEventType
from storepouch.snapshot import HostSnapshotProvider, SnapshotProvider, StaticSnapshotProvider
from storepouch.stores import CouchStore, DocumentStore, MemoryStore, open_store

__all__ = [
    "__version__",
    "ClientDocument",
    "ClientRecord",
    "ClientRegistry",
    "ConfigError",
    "ConflictError",
    "CouchStore",
    "DataDocument",
    "Direction",
    "Document",
    "DocumentFactory",
    "DocumentStore",
    "HeartbeatHandle",
    "HeartbeatScheduler",
    "HostSnapshotProvider",
    "KeyedLocks",
    "MemoryStore",
    "NotFoundError",
    "ReplicationController",
    "ReplicationEvent",
    "ReplicationEventType",
    "SnapshotProvider",
    "StaticSnapshotProvider",
    "StatusDocument",
    "StatusSnapshot",
    "StoreConfig",
    "StoreError",
    "StorePouch",
    "StorepouchError",
    "WhereFilter",
    "WriteResult",
    "open_store",
    "parse_document",
    "remove",
    "upsert",
    "upsert_with_retry",
]
