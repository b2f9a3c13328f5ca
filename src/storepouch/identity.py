"""Document factory labelling documents with the host identity."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from storepouch.models._base import now_ms
from storepouch.models.client import ClientRecord
from storepouch.models.documents import (
    ClientDocument,
    DataDocument,
    StatusDocument,
    client_document_id,
    status_document_id,
)
from storepouch.snapshot import SnapshotProvider


class DocumentFactory:
    """Build documents carrying this host's serial, time zone and components.

    Parameters
    ----------
    components : list of ClientRecord
        Embedded in each status document. The list is read at build time,
        so registry changes show up in the next heartbeat.
    serial : str
        Host serial number.
    timezone : str
        IANA time zone of the host.
    provider : SnapshotProvider
        Source of status snapshots.
    """

    def __init__(
        self,
        components: list[ClientRecord],
        serial: str,
        timezone: str,
        provider: SnapshotProvider,
    ) -> None:
        self.components = components
        self.serial = serial
        self.timezone = timezone
        self._provider = provider

    def status(self) -> StatusDocument:
        """Capture a fresh snapshot and wrap it in a status document."""
        snapshot = self._provider.capture_status()
        return StatusDocument(
            id=status_document_id(self.serial, snapshot.boot_id),
            updated_at=snapshot.updated_at,
            serial=self.serial,
            timezone=self.timezone,
            payload=snapshot,
            components=list(self.components),
        )

    def data(self, obj: Mapping[str, Any], uid: str) -> DataDocument:
        return DataDocument(
            id=uid,
            uid=uid,
            updated_at=now_ms(),
            serial=self.serial,
            timezone=self.timezone,
            payload=dict(obj),
        )

    def new(self, uid: str) -> DataDocument:
        """Empty data document for *uid*, ready to be filled and saved."""
        return self.data({}, uid)

    def client(self, record: ClientRecord) -> ClientDocument:
        return ClientDocument(
            id=client_document_id(record.uid),
            uid=record.uid,
            client_type=record.type,
            updated_at=now_ms(),
            serial=self.serial,
            timezone=self.timezone,
        )
