"""Periodic status heartbeats."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from storepouch._constants import DEFAULT_HEARTBEAT_INTERVAL_MS
from storepouch.engine import upsert
from storepouch.models.documents import Document, WriteResult
from storepouch.stores.base import DocumentStore

_logger = logging.getLogger(__name__)

Writer = Callable[[DocumentStore, Document], Awaitable[WriteResult]]


class HeartbeatHandle:
    """Lifecycle handle of a recurring heartbeat.

    Counters are updated after every tick; ``last_error`` keeps the most
    recent failure even after later ticks succeed.
    """

    def __init__(self, store: DocumentStore, interval_ms: int) -> None:
        self.store = store
        self.interval_ms = interval_ms
        self.ticks = 0
        self.failures = 0
        self.last_result: WriteResult | None = None
        self.last_error: BaseException | None = None
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return (
            f"HeartbeatHandle(store={self.store.name!r}, interval_ms={self.interval_ms}, "
            f"ticks={self.ticks}, failures={self.failures}, running={self.running})"
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Stop scheduling further ticks. An in-flight tick is cancelled too."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait until the heartbeat task has finished (normally after :meth:`cancel`)."""
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class HeartbeatScheduler:
    """Capture-and-write loop for status documents.

    Parameters
    ----------
    capture : callable
        Returns a fresh status document on each call.
    write : callable, optional
        Coroutine writing a document to a store. Defaults to
        :func:`storepouch.engine.upsert`.
    default_interval_ms : int
        Interval used when :meth:`heartbeat` gets ``None``.
    """

    def __init__(
        self,
        capture: Callable[[], Document],
        *,
        write: Writer = upsert,
        default_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS,
    ) -> None:
        self._capture = capture
        self._write = write
        self._default_interval_ms = default_interval_ms
        self._active: HeartbeatHandle | None = None

    @property
    def active(self) -> HeartbeatHandle | None:
        """The running recurring heartbeat, if any."""
        if self._active is not None and not self._active.running:
            return None
        return self._active

    async def beat_once(self, store: DocumentStore) -> WriteResult:
        """Capture one snapshot and write it; failures propagate."""
        return await self._write(store, self._capture())

    async def heartbeat(
        self,
        store: DocumentStore,
        interval_ms: int | None = None,
    ) -> WriteResult | HeartbeatHandle:
        """Write a heartbeat once (``interval_ms == 0``) or start a recurring one.

        Returns the :class:`WriteResult` of the single write in one-shot
        mode, otherwise the :class:`HeartbeatHandle` of the new schedule.
        ``None`` falls back to the default interval, which may itself be 0.
        """
        interval = self._default_interval_ms if interval_ms is None else interval_ms
        if interval == 0:
            return await self.beat_once(store)
        return self.start(store, interval)

    def start(self, store: DocumentStore, interval_ms: int | None = None) -> HeartbeatHandle:
        """Start a recurring heartbeat, replacing any running one.

        The first tick runs immediately, then every *interval_ms*.
        """
        interval = self._default_interval_ms if interval_ms is None else interval_ms
        if interval <= 0:
            raise ValueError("interval_ms must be > 0 for a recurring heartbeat")

        self.stop()
        handle = HeartbeatHandle(store, interval)
        handle._task = asyncio.create_task(self._run(handle), name=f"storepouch-heartbeat-{store.name}")
        self._active = handle
        _logger.info("Heartbeat started store=%s interval_ms=%d", store.name, interval)
        return handle

    def stop(self) -> None:
        """Cancel the running recurring heartbeat, if any."""
        handle = self._active
        self._active = None
        if handle is not None and handle.running:
            handle.cancel()
            _logger.info("Heartbeat stopped store=%s ticks=%d", handle.store.name, handle.ticks)

    async def _run(self, handle: HeartbeatHandle) -> None:
        loop = asyncio.get_running_loop()
        interval_s = handle.interval_ms / 1000.0
        next_at = loop.time()
        while True:
            delay = next_at - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            await self._tick(handle)
            next_at += interval_s
            now = loop.time()
            if next_at < now:
                # Slow tick: skip the missed slots instead of bursting.
                missed = int((now - next_at) // interval_s) + 1
                next_at += missed * interval_s

    async def _tick(self, handle: HeartbeatHandle) -> None:
        handle.ticks += 1
        try:
            handle.last_result = await self.beat_once(handle.store)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            handle.failures += 1
            handle.last_error = exc
            _logger.warning("Heartbeat tick %d to %s failed: %s", handle.ticks, handle.store.name, exc)
            _logger.debug("Heartbeat failure details", exc_info=True)
