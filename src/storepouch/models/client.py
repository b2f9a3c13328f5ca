"""Client record model."""

from __future__ import annotations

from pydantic import field_validator

from storepouch.models._base import StoreBaseModel


class ClientRecord(StoreBaseModel):
    """A client attached to the host (a "component").

    ``uid`` uniquely identifies the client within a registry.
    """

    uid: str
    type: str | None = None

    @field_validator("uid")
    @classmethod
    def _normalize_uid(cls, value: str) -> str:
        uid = value.strip()
        if not uid:
            raise ValueError("uid must be non-empty")
        return uid
