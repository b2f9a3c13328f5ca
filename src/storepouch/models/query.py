"""Query filter for :meth:`storepouch.client.StorePouch.where`."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from storepouch._constants import CLIENT_TYPE, DATA_TYPE, STATUS_TYPE
from storepouch.models._base import now_ms


class WhereFilter(BaseModel):
    """Time range and identity filter.

    ``from_`` and ``to`` bound ``updatedAt`` (epoch ms, inclusive). When
    ``from_`` is given without ``to``, ``to`` is set to the current time.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    from_: int | None = Field(default=None, alias="from")
    to: int | None = None
    uid: str | None = None
    serial: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_upper_bound(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        start = values.get("from", values.get("from_"))
        if start is not None and values.get("to") is None:
            values = dict(values)
            values["to"] = now_ms()
        return values

    def to_selector(self) -> dict[str, Any]:
        """Build a Mango selector matching this filter."""
        selector: dict[str, Any] = {"type": {"$in": [STATUS_TYPE, DATA_TYPE, CLIENT_TYPE]}}
        bounds: dict[str, int] = {}
        if self.from_ is not None:
            bounds["$gte"] = self.from_
        if self.to is not None:
            bounds["$lte"] = self.to
        if bounds:
            selector["updatedAt"] = bounds
        if self.uid is not None:
            selector["uid"] = self.uid
        if self.serial is not None:
            selector["serial"] = self.serial
        return selector
