"""Data models for storepouch documents."""

from storepouch.models._base import EpochMs, StoreBaseModel, now_ms, parse_epoch_ms
from storepouch.models.client import ClientRecord
from storepouch.models.documents import (
    AnyDocument,
    ClientDocument,
    DataDocument,
    Document,
    StatusDocument,
    WriteResult,
    client_document_id,
    parse_document,
    status_document_id,
)
from storepouch.models.query import WhereFilter
from storepouch.models.snapshot import (
    AudioChannel,
    AudioDevice,
    AudioInputs,
    Drive,
    Network,
    ScanResult,
    StatusSnapshot,
    UsbDevice,
    VideoChannel,
    VideoDevice,
    VideoInputs,
)

__all__ = [
    "AnyDocument",
    "AudioChannel",
    "AudioDevice",
    "AudioInputs",
    "ClientDocument",
    "ClientRecord",
    "DataDocument",
    "Document",
    "Drive",
    "EpochMs",
    "Network",
    "ScanResult",
    "StatusDocument",
    "StatusSnapshot",
    "StoreBaseModel",
    "UsbDevice",
    "VideoChannel",
    "VideoDevice",
    "VideoInputs",
    "WhereFilter",
    "WriteResult",
    "client_document_id",
    "now_ms",
    "parse_document",
    "parse_epoch_ms",
    "status_document_id",
]
