"""Snapshot providers.

A provider captures the current host state on demand. Hardware probing
(USB, audio, video, network enumeration) is done by the agent's probes;
the providers here cover the boot identity only, or replay a fixed
snapshot, which is all the persistence layer needs to run.
"""

from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from typing import Protocol

from storepouch.models._base import now_ms
from storepouch.models.snapshot import StatusSnapshot

_logger = logging.getLogger(__name__)

_BOOT_ID_PATH = Path("/proc/sys/kernel/random/boot_id")
_PROC_STAT_PATH = Path("/proc/stat")


class SnapshotProvider(Protocol):
    """Structural interface for snapshot sources.

    ``capture_status`` is synchronous; it is called on the event loop
    once per heartbeat tick and must return quickly.
    """

    def capture_status(self) -> StatusSnapshot: ...


def _read_boot_id(path: Path) -> str | None:
    try:
        value = path.read_text(encoding="ascii").strip()
    except OSError:
        return None
    return value or None


def _read_boot_time_ms(path: Path) -> int | None:
    try:
        lines = path.read_text(encoding="ascii").splitlines()
    except OSError:
        return None
    for line in lines:
        if line.startswith("btime "):
            try:
                return int(line.split()[1]) * 1000
            except (IndexError, ValueError):
                return None
    return None


class HostSnapshotProvider:
    """Boot-identity-only provider for the local host.

    Reads the Linux boot id and boot time when available. Elsewhere a
    per-process identifier and the process start time stand in, so the
    status document still has a stable identity for this run.
    """

    def __init__(
        self,
        *,
        boot_id_path: Path = _BOOT_ID_PATH,
        proc_stat_path: Path = _PROC_STAT_PATH,
    ) -> None:
        boot_id = _read_boot_id(boot_id_path)
        if boot_id is None:
            boot_id = uuid.uuid4().hex
            _logger.debug("Boot id unavailable at %s; using process id %s", boot_id_path, boot_id)
        boot_time = _read_boot_time_ms(proc_stat_path)
        if boot_time is None:
            boot_time = int((time.time() - time.monotonic()) * 1000)
        self._boot_id = boot_id
        self._boot_time = boot_time

    @property
    def boot_id(self) -> str:
        return self._boot_id

    def capture_status(self) -> StatusSnapshot:
        return StatusSnapshot(boot_id=self._boot_id, boot_time=self._boot_time, updated_at=now_ms())


class StaticSnapshotProvider:
    """Replays a fixed snapshot, refreshing ``updated_at`` on every capture."""

    def __init__(self, snapshot: StatusSnapshot) -> None:
        self._snapshot = snapshot

    def capture_status(self) -> StatusSnapshot:
        return self._snapshot.model_copy(update={"updated_at": now_ms()})
