"""Shared constants for storepouch."""

from __future__ import annotations

USER_AGENT = "storepouch/1 (+aiohttp)"

#: Default heartbeat interval when the caller does not pass one.
DEFAULT_HEARTBEAT_INTERVAL_MS = 30_000

LOCAL_SELECTOR = "local"
REMOTE_SELECTOR = "remote"

MEMORY_SCHEME = "memory://"

STATUS_TYPE = "status"
DATA_TYPE = "data"
CLIENT_TYPE = "client"

STATUS_ID_PREFIX = "status"
CLIENT_ID_PREFIX = "client"

#: Documents returned by a single changes-feed request.
CHANGES_BATCH_LIMIT = 100
