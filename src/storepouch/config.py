"""Client configuration for storepouch."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from storepouch._constants import DEFAULT_HEARTBEAT_INTERVAL_MS
from storepouch.exceptions import ConfigError
from storepouch.models.client import ClientRecord


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def parse_components(value: str) -> list[ClientRecord]:
    """Parse ``"type:uid,type:uid"`` (or bare ``"uid"``) into client records."""
    records: list[ClientRecord] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        kind, sep, uid = item.rpartition(":")
        if not sep:
            records.append(ClientRecord(uid=item))
        else:
            records.append(ClientRecord(uid=uid, type=kind or None))
    return records


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Client configuration.

    Parameters
    ----------
    storeurl : str
        Local document store. ``memory://name`` (or a bare name) selects an
        in-process store; ``http(s)://host/db`` selects a CouchDB database.
    remote : str or None
        Optional remote CouchDB database URL.
    sync : bool
        Run continuous bidirectional replication between ``storeurl`` and
        ``remote``. Ignored when ``remote`` is not set.
    components : list of ClientRecord
        Known clients attached to this host; seeds the client registry and
        is embedded in every status document.
    serial : str
        Host serial number used to label documents.
    timezone : str
        IANA time zone of the host.
    request_timeout : float
        Total timeout in seconds for a single HTTP store request.
    heartbeat_interval_ms : int
        Interval used by ``heartbeat()`` when none is passed.
    replication_poll_interval : float
        Seconds the replicator idles when neither side has changes.
    replication_max_backoff : float
        Upper bound in seconds for the reconnect backoff while paused.
    """

    storeurl: str
    remote: str | None = None
    sync: bool = False
    components: list[ClientRecord] = dataclasses.field(default_factory=list)
    serial: str = ""
    timezone: str = "UTC"
    request_timeout: float = 30.0
    heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS
    replication_poll_interval: float = 1.0
    replication_max_backoff: float = 60.0

    def __post_init__(self) -> None:
        if not self.storeurl or not self.storeurl.strip():
            raise ConfigError("no database specified")
        if self.heartbeat_interval_ms < 0:
            raise ConfigError("heartbeat_interval_ms must be >= 0")
        if self.replication_poll_interval <= 0:
            raise ConfigError("replication_poll_interval must be > 0")
        # Accept plain dicts for components (e.g. from JSON config files).
        records = [c if isinstance(c, ClientRecord) else ClientRecord.model_validate(c) for c in self.components]
        object.__setattr__(self, "components", records)

    @property
    def sync_enabled(self) -> bool:
        """Whether continuous replication should run."""
        return bool(self.remote) and self.sync

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from environment variables.

        Reads ``STOREPOUCH_STOREURL`` and optional ``STOREPOUCH_*``
        variables. Explicit keyword arguments override environment values.

        Raises
        ------
        ConfigError
            If no store URL is available from either source.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "STOREPOUCH_STOREURL": "storeurl",
            "STOREPOUCH_REMOTE": "remote",
            "STOREPOUCH_SERIAL": "serial",
            "STOREPOUCH_TIMEZONE": "timezone",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        if "sync" not in overrides:
            config_kwargs["sync"] = _env_bool(env.get("STOREPOUCH_SYNC"), False)

        components_env = env.get("STOREPOUCH_COMPONENTS")
        if components_env is not None and "components" not in overrides:
            config_kwargs["components"] = parse_components(components_env)

        timeout_env = env.get("STOREPOUCH_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = float(timeout_env)

        interval_env = env.get("STOREPOUCH_HEARTBEAT_INTERVAL_MS")
        if interval_env is not None and "heartbeat_interval_ms" not in overrides:
            config_kwargs["heartbeat_interval_ms"] = int(interval_env)

        config_kwargs.update(overrides)
        config_kwargs.setdefault("storeurl", "")

        return cls(**config_kwargs)
