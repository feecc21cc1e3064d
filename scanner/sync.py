import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from scanner.client import MarkingClient
from scanner.connectivity import ConnectivityMonitor
from scanner.errors import StorageUnavailable, TransportError
from scanner.offline_queue import OfflineQueue

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def log_notifier(title: str, message: str) -> None:
    logger.info("%s: %s", title, message)


@dataclass(frozen=True)
class DrainResult:
    succeeded: int
    failed: int
    skipped: bool = False


class SyncEngine:
    """
    Pushes offline scans to the marking service.

    Items go out in the order they were queued. An item is marked synced
    once the server has given a definite answer for it; transport failures
    leave it queued for the next drain. Only one drain runs at a time.
    """

    def __init__(
        self,
        client: MarkingClient,
        queue: OfflineQueue,
        *,
        notify: Notifier = log_notifier,
        min_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.queue = queue
        self.notify = notify
        self.min_interval = min_interval
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_auto_drain: float | None = None

    @property
    def draining(self) -> bool:
        return self._lock.locked()

    async def drain(self) -> DrainResult:
        if self._lock.locked():
            return DrainResult(0, 0, skipped=True)

        async with self._lock:
            pending = await self.queue.list_unsynced()
            succeeded = failed = 0

            for item in pending:
                try:
                    response = await self.client.mark(item.code)
                except TransportError as e:
                    logger.warning("Sync of %s failed, will retry: %s", item.id, e)
                    failed += 1
                    continue

                if not (response.success or response.duplicate or response.not_found):
                    # Server-side write failure; the item stays queued.
                    logger.warning("Sync of %s not applied, will retry: %s", item.id, response.message)
                    failed += 1
                    continue

                try:
                    await self.queue.mark_synced(item.id)
                except StorageUnavailable:
                    failed += 1
                    continue

                if response.not_found:
                    logger.warning("Offline scan %s (%s) rejected: %s", item.id, item.code, response.message)
                    self.notify("Scan Rejected", f"{item.name} ({item.code}): {response.message}")
                    failed += 1
                else:
                    succeeded += 1

            remaining = await self.queue.count_unsynced()
            if succeeded and remaining == 0:
                self.notify("Sync Complete", f"Successfully synced {succeeded} attendance records.")
            logger.info("Drain finished: %d succeeded, %d failed, %d remaining", succeeded, failed, remaining)
            return DrainResult(succeeded, failed)

    async def maybe_drain(self) -> DrainResult | None:
        """Drain unless an automatic drain already started within `min_interval`."""
        now = self._clock()
        if self._last_auto_drain is not None and now - self._last_auto_drain < self.min_interval:
            return None
        self._last_auto_drain = now
        try:
            return await self.drain()
        except StorageUnavailable:
            self.notify("Sync Failed", "Failed to sync offline data. Will retry automatically.")
            return None

    async def watch(self, monitor: ConnectivityMonitor) -> None:
        """Drain on reconnect and on poll ticks while online, until the monitor closes."""
        sub = monitor.subscribe()
        try:
            async for event in sub:
                if event.kind in ("online", "poll") and monitor.is_online():
                    await self.maybe_drain()
        finally:
            monitor.unsubscribe(sub)
