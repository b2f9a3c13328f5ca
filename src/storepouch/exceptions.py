"""Custom exception hierarchy for storepouch."""

from __future__ import annotations


class StorepouchError(Exception):
    """Base exception for all storepouch errors."""


class ConfigError(StorepouchError):
    """Invalid or missing configuration."""


class StoreError(StorepouchError):
    """Document store failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class NotFoundError(StoreError):
    """Document lookup miss (HTTP 404).

    Recoverable: the upsert engine takes the create branch and the
    delete engine treats it as an already-completed removal.
    """


class ConflictError(StoreError):
    """Write rejected because the supplied ``_rev`` is stale (HTTP 409).

    Never retried automatically by :func:`storepouch.engine.upsert`;
    callers decide whether to retry or drop the write.
    """
