"""Base model and timestamp helpers for storepouch documents.

Every document and snapshot model inherits from :class:`StoreBaseModel`
which provides:

* ``alias_generator=to_camel`` so snake_case fields serialise to the
  camelCase keys the agent has always written (``bootId``,
  ``updatedAt``, ...).
* ``populate_by_name`` so either spelling validates.
* ``to_wire()`` producing the JSON dict handed to a document store.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 100_000_000_000


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def parse_epoch_ms(value: Any) -> int | None:
    """Coerce an epoch timestamp (seconds **or** milliseconds) or datetime to epoch ms.

    Returns ``None`` when the value is ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    ts = float(value)
    if abs(ts) < _MS_THRESHOLD:
        ts *= 1000
    return int(ts)


EpochMs = Annotated[int, BeforeValidator(parse_epoch_ms)]
"""Annotated type that coerces epoch seconds/ms or datetimes to epoch ms."""


class StoreBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with wire (alias) keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
