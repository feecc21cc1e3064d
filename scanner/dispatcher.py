import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal

from scanner.client import MarkingClient
from scanner.connectivity import ConnectivityMonitor
from scanner.errors import InputError, StorageUnavailable, TransportError
from scanner.offline_queue import OfflineQueue
from scanner.reader import CodeReader

logger = logging.getLogger(__name__)

ScanStatus = Literal["idle", "success", "error", "duplicate"]

MSG_SCAN_FAILED = "Failed to process scan"
MSG_STORAGE_UNAVAILABLE = "Scan not recorded: offline storage unavailable"
OFFLINE_PLACEHOLDER_NAME = "Unknown (offline)"


@dataclass(frozen=True)
class ScanOutcome:
    status: ScanStatus
    message: str
    student: dict[str, Any] | None = None
    offline: bool = False


class ScanDispatcher:
    """
    Routes each decoded code to the marking service or, when offline, to
    the local queue, and holds the result on display for a few seconds.

    Submissions may overlap. A newer result replaces the one on display
    straight away; nothing already in flight is cancelled.
    """

    def __init__(
        self,
        client: MarkingClient,
        queue: OfflineQueue,
        monitor: ConnectivityMonitor,
        *,
        refresh: Callable[[], Awaitable[None]] | None = None,
        display_timeout: float = 3.0,
    ):
        self.client = client
        self.queue = queue
        self.monitor = monitor
        self.refresh = refresh
        self.display_timeout = display_timeout

        self.status: ScanStatus = "idle"
        self.message = ""
        self.last_outcome: ScanOutcome | None = None
        self.in_flight = 0
        self._reset_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, code: str | None) -> ScanOutcome:
        clean = (code or "").strip()
        if not clean:
            raise InputError("QR code is required")

        self.in_flight += 1
        try:
            if self.monitor.is_online():
                outcome = await self._submit_online(clean)
            else:
                outcome = await self._submit_offline(clean)
        finally:
            self.in_flight -= 1

        self._show(outcome)
        if outcome.status == "success" and not outcome.offline:
            self._track(self._refresh())
        return outcome

    async def _submit_online(self, code: str) -> ScanOutcome:
        try:
            response = await self.client.mark(code)
        except TransportError:
            if not self.monitor.is_online():
                # The attempt itself showed the network is gone; keep the scan.
                logger.warning("Connection lost while submitting %s, queuing it", code)
                return await self._submit_offline(code)
            logger.exception("Error processing scan %s", code)
            return ScanOutcome("error", MSG_SCAN_FAILED)

        if response.success:
            return ScanOutcome("success", response.message, response.student)
        if response.duplicate:
            return ScanOutcome("duplicate", response.message, response.student)
        return ScanOutcome("error", response.message)

    async def _submit_offline(self, code: str) -> ScanOutcome:
        try:
            cached = await self.queue.find_student(code)
            name = cached.name if cached else OFFLINE_PLACEHOLDER_NAME
            local_id = await self.queue.enqueue(code, name)
        except StorageUnavailable:
            logger.error("Offline scan of %s was not recorded", code)
            return ScanOutcome("error", MSG_STORAGE_UNAVAILABLE, offline=True)

        logger.info("Queued offline scan %s as %s", code, local_id)
        student = {"qrId": code, "name": name} if cached else None
        return ScanOutcome("success", f"{name} marked present (offline)", student, offline=True)

    async def _refresh(self) -> None:
        if self.refresh is None:
            return
        try:
            await self.refresh()
        except Exception:
            logger.warning("Refreshing stats after a scan failed", exc_info=True)

    # -----------------------------
    # Display state
    # -----------------------------
    def _show(self, outcome: ScanOutcome) -> None:
        self.status = outcome.status
        self.message = outcome.message
        self.last_outcome = outcome
        if self._reset_handle is not None:
            self._reset_handle.cancel()
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self.display_timeout, self._reset)

    def _reset(self) -> None:
        self.status = "idle"
        self.message = ""
        self._reset_handle = None

    # -----------------------------
    # Background work
    # -----------------------------
    def _track(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def attach(self, reader: CodeReader) -> asyncio.Task:
        """Submit every payload the reader publishes until it closes."""
        sub = reader.subscribe()

        async def pump() -> None:
            async for payload in sub:
                self._track(self.submit(payload))

        return asyncio.create_task(pump())

    async def wait_idle(self) -> None:
        """Wait for reader submissions and post-scan refreshes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
