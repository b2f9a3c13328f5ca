"""Document models stored by storepouch.

Documents form a tagged union on ``type``:

* ``status`` -- a host snapshot, one document per boot of a host.
* ``data`` -- caller-supplied payload keyed by a caller-supplied uid.
* ``client`` -- a registered client record.

On the wire every document carries CouchDB's ``_id`` and ``_rev`` keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from storepouch._constants import CLIENT_ID_PREFIX, CLIENT_TYPE, DATA_TYPE, STATUS_ID_PREFIX, STATUS_TYPE
from storepouch.models._base import EpochMs, StoreBaseModel, now_ms
from storepouch.models.client import ClientRecord
from storepouch.models.snapshot import StatusSnapshot


def status_document_id(serial: str, boot_id: str) -> str:
    """Identity of the status document for one boot of one host."""
    return f"{STATUS_ID_PREFIX}_{serial or 'unknown'}_{boot_id}"


def client_document_id(uid: str) -> str:
    return f"{CLIENT_ID_PREFIX}_{uid}"


class Document(StoreBaseModel):
    """Fields shared by every stored document."""

    id: str = Field(alias="_id", min_length=1)
    rev: str | None = Field(default=None, alias="_rev")
    type: str
    updated_at: EpochMs = Field(default_factory=now_ms)
    serial: str = ""
    timezone: str = "UTC"

    def without_rev(self) -> Document:
        """Copy of this document with the revision token removed."""
        return self.model_copy(update={"rev": None})


class StatusDocument(Document):
    type: Literal["status"] = STATUS_TYPE
    payload: StatusSnapshot
    components: list[ClientRecord] = Field(default_factory=list)


class DataDocument(Document):
    type: Literal["data"] = DATA_TYPE
    uid: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ClientDocument(Document):
    type: Literal["client"] = CLIENT_TYPE
    uid: str
    client_type: str | None = None

    def to_record(self) -> ClientRecord:
        return ClientRecord(uid=self.uid, type=self.client_type)


AnyDocument = Annotated[StatusDocument | DataDocument | ClientDocument, Field(discriminator="type")]

_DOCUMENT_ADAPTER: TypeAdapter[StatusDocument | DataDocument | ClientDocument] = TypeAdapter(AnyDocument)


def parse_document(raw: Mapping[str, Any]) -> StatusDocument | DataDocument | ClientDocument:
    """Validate a raw store document into its typed model.

    Raises ``pydantic.ValidationError`` for unknown ``type`` values.
    """
    return _DOCUMENT_ADAPTER.validate_python(dict(raw))


class WriteResult(StoreBaseModel):
    """Outcome of a successful write."""

    id: str
    rev: str
    created: bool = False
