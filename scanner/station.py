import argparse
import asyncio
import logging
import os

from backend import config
from backend.logging_config import configure_logging
from scanner.client import MarkingClient
from scanner.connectivity import ConnectivityMonitor, link_state
from scanner.dispatcher import ScanDispatcher
from scanner.errors import StorageUnavailable, TransportError
from scanner.offline_queue import CachedStudent, OfflineQueue
from scanner.reader import CodeReader
from scanner.sync import Notifier, SyncEngine, log_notifier

logger = logging.getLogger(__name__)


class ScanStation:
    """
    One scanning device: reader, dispatcher, offline queue, connectivity
    monitor and sync engine wired together with an explicit lifecycle.
    """

    def __init__(
        self,
        client: MarkingClient,
        queue: OfflineQueue,
        monitor: ConnectivityMonitor,
        *,
        reader: CodeReader | None = None,
        notify: Notifier = log_notifier,
        display_timeout: float = config.RESULT_DISPLAY_SECONDS,
    ):
        self.client = client
        self.queue = queue
        self.monitor = monitor
        self.reader = reader
        self.dispatcher = ScanDispatcher(
            client,
            queue,
            monitor,
            refresh=self.refresh_views,
            display_timeout=display_timeout,
        )
        self.sync = SyncEngine(client, queue, notify=notify, min_interval=monitor.poll_interval)
        self.stats: dict = {}
        self.recent_logs: list[dict] = []
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def refresh_views(self) -> None:
        self.stats, self.recent_logs = await asyncio.gather(
            self.client.get_stats(),
            self.client.get_recent_logs(5),
        )

    async def refresh_roster(self) -> int:
        """Copy codes and names into the offline cache; 0 when they cannot be fetched."""
        try:
            rows = await self.client.get_student_codes()
        except TransportError as e:
            logger.warning("Roster cache not refreshed: %s", e)
            return 0
        students = [CachedStudent(qr_id=str(r.get("qrId") or ""), name=str(r.get("name") or "")) for r in rows]
        return await self.queue.store_roster(students)

    async def start(self) -> None:
        await self.queue.init()
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self.monitor.run(self._stop)),
            asyncio.create_task(self.sync.watch(self.monitor)),
        ]
        if self.reader is not None:
            self._tasks.append(self.dispatcher.attach(self.reader))
        if self.monitor.is_online():
            await self.sync.maybe_drain()

    async def stop(self) -> None:
        self._stop.set()
        self.monitor.close()
        if self.reader is not None:
            self.reader.close()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.dispatcher.wait_idle()
        self._tasks = []


async def run_station(args: argparse.Namespace) -> None:
    queue = OfflineQueue(args.offline_db)
    monitor = ConnectivityMonitor(
        online=not args.offline,
        poll_interval=config.SYNC_INTERVAL_SECONDS,
        link=link_state,
    )
    reader = CodeReader(debounce_seconds=config.READER_DEBOUNCE_SECONDS)

    async with MarkingClient(
        args.server,
        args.token,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        on_reachability=monitor.set_online,
    ) as client:
        station = ScanStation(client, queue, monitor, reader=reader)
        try:
            await station.start()
        except StorageUnavailable:
            logger.error("Offline storage at %s is unavailable; scans made offline cannot be kept", args.offline_db)
            raise
        if monitor.is_online():
            await station.refresh_roster()

        stop = asyncio.Event()
        try:
            await reader.run_camera(stop, device=args.camera)
        finally:
            stop.set()
            await station.stop()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Scan attendance QR codes from a camera.")
    parser.add_argument("--server", default=config.SERVER_URL, help="Marking service base URL")
    parser.add_argument("--token", default=os.getenv("SCANMARK_TOKEN", ""), help="Operator bearer token")
    parser.add_argument("--camera", type=int, default=0, help="Capture device index")
    parser.add_argument("--offline-db", default=str(config.OFFLINE_DB_PATH), help="Offline queue file")
    parser.add_argument("--offline", action="store_true", help="Start in offline mode")
    args = parser.parse_args(argv)

    if not args.token:
        parser.error("an operator token is required (--token or SCANMARK_TOKEN)")

    configure_logging()
    try:
        asyncio.run(run_station(args))
    except KeyboardInterrupt:
        logger.info("Scanner stopped")


if __name__ == "__main__":
    main()
