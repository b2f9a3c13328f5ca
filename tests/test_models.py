from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from storepouch.models import (
    ClientDocument,
    ClientRecord,
    DataDocument,
    StatusDocument,
    StatusSnapshot,
    VideoDevice,
    WhereFilter,
    parse_document,
    parse_epoch_ms,
    status_document_id,
)


def test_parse_document_dispatches_on_type() -> None:
    status = parse_document(
        {
            "_id": "status_SN-1_b1",
            "_rev": "3-abc",
            "type": "status",
            "updatedAt": 1_700_000_000_000,
            "payload": {"bootId": "b1", "bootTime": 1_690_000_000, "updatedAt": 1_700_000_000_000},
        }
    )
    data = parse_document({"_id": "s1", "type": "data", "uid": "s1", "payload": {"x": 1}})
    client = parse_document({"_id": "client_c1", "type": "client", "uid": "c1", "clientType": "camera"})

    assert isinstance(status, StatusDocument)
    assert status.rev == "3-abc"
    assert status.payload.boot_time == 1_690_000_000_000
    assert isinstance(data, DataDocument)
    assert isinstance(client, ClientDocument)
    assert client.to_record() == ClientRecord(uid="c1", type="camera")


def test_parse_document_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_document({"_id": "x", "type": "mystery"})


def test_to_wire_uses_store_keys() -> None:
    doc = DataDocument(id="s1", uid="s1", updated_at=1_700_000_000_000, payload={"temp": 20})

    wire = doc.to_wire()

    assert wire["_id"] == "s1"
    assert "_rev" not in wire
    assert wire["updatedAt"] == 1_700_000_000_000
    assert wire["type"] == "data"
    assert wire["payload"] == {"temp": 20}


def test_without_rev_drops_revision() -> None:
    doc = DataDocument(id="s1", rev="2-x", uid="s1")

    assert doc.without_rev().rev is None
    assert doc.rev == "2-x"


def test_document_id_must_not_be_empty() -> None:
    with pytest.raises(ValidationError):
        DataDocument(id="", uid="")


def test_snapshot_serialises_camel_case() -> None:
    snapshot = StatusSnapshot.model_validate(
        {
            "bootId": "b1",
            "bootTime": 1_690_000_000_000,
            "updatedAt": 1_700_000_000_000,
            "usbDevices": [{"dev": "/dev/bus/usb/001/002", "product": "Webcam"}],
            "video": {"inputs": [{"dev": "/dev/video0", "model_id": "0825", "vendor_id": "046d"}]},
        }
    )

    wire = snapshot.to_wire()

    assert wire["bootId"] == "b1"
    assert wire["usbDevices"][0]["product"] == "Webcam"
    assert wire["video"]["inputs"][0]["model_id"] == "0825"
    assert wire["video"]["inputs"][0]["vendor_id"] == "046d"


def test_video_device_accepts_field_names() -> None:
    device = VideoDevice(dev="/dev/video0", model_id="0825")

    assert device.model_id == "0825"


def test_status_document_id_falls_back_for_missing_serial() -> None:
    assert status_document_id("SN-1", "b1") == "status_SN-1_b1"
    assert status_document_id("", "b1") == "status_unknown_b1"


def test_client_record_uid_is_normalised() -> None:
    assert ClientRecord(uid="  cam-1 ").uid == "cam-1"
    with pytest.raises(ValidationError):
        ClientRecord(uid="   ")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1_700_000_000, 1_700_000_000_000),
        (1_700_000_000_123, 1_700_000_000_123),
        (datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC), 1_700_000_000_000),
        (None, None),
    ],
)
def test_parse_epoch_ms(value: object, expected: int | None) -> None:
    assert parse_epoch_ms(value) == expected


def test_where_filter_defaults_upper_bound_to_now() -> None:
    where = WhereFilter.model_validate({"from": 1_000})

    assert where.from_ == 1_000
    assert where.to is not None
    assert where.to >= 1_700_000_000_000


def test_where_filter_builds_selector() -> None:
    where = WhereFilter(from_=10, to=20, uid="s1", serial="SN-1")

    assert where.to_selector() == {
        "type": {"$in": ["status", "data", "client"]},
        "updatedAt": {"$gte": 10, "$lte": 20},
        "uid": "s1",
        "serial": "SN-1",
    }


def test_where_filter_without_bounds_matches_all_types() -> None:
    assert WhereFilter().to_selector() == {"type": {"$in": ["status", "data", "client"]}}


def test_where_filter_rejects_unknown_keys() -> None:
    with pytest.raises(ValidationError):
        WhereFilter.model_validate({"since": 1})
