import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal

from scanner.events import EventChannel, Subscription

logger = logging.getLogger(__name__)

EventKind = Literal["online", "offline", "poll"]

SYS_NET = Path("/sys/class/net")


def link_state(root: Path = SYS_NET) -> bool | None:
    """
    Whether any non-loopback network interface has a link, as the OS reports it.

    Reads the kernel's per-interface `operstate`; returns None where the
    platform does not expose it, leaving the current state untouched.
    """
    if not root.is_dir():
        return None
    for iface in sorted(root.iterdir()):
        if iface.name == "lo":
            continue
        try:
            state = (iface / "operstate").read_text().strip()
        except OSError:
            continue
        # Point-to-point links (VPN, some Wi-Fi drivers) report "unknown" while usable.
        if state in ("up", "unknown"):
            return True
    return False


@dataclass(frozen=True)
class ConnectivityEvent:
    kind: EventKind
    online: bool
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectivityMonitor:
    """
    Tracks whether the device can reach the network.

    Reachability signals are pushed in through `set_online` and taken at
    face value: the OS link state (read on every poll tick when a `link`
    reader is given) and connection failures reported by the HTTP client.
    Transitions and periodic poll ticks go out to subscribers in the order
    they occur. The monitor only notifies; it never submits anything itself.
    """

    def __init__(
        self,
        *,
        online: bool = True,
        poll_interval: float = 30.0,
        link: Callable[[], bool | None] | None = None,
    ):
        self._online = online
        self.poll_interval = poll_interval
        self._link = link
        self._events: EventChannel[ConnectivityEvent] = EventChannel()

    def is_online(self) -> bool:
        return self._online

    def subscribe(self) -> Subscription[ConnectivityEvent]:
        return self._events.subscribe()

    def unsubscribe(self, sub: Subscription[ConnectivityEvent]) -> None:
        self._events.unsubscribe(sub)

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        self._events.publish(ConnectivityEvent("online" if online else "offline", online))

    def check_link(self) -> None:
        if self._link is None:
            return
        state = self._link()
        if state is not None:
            self.set_online(state)

    def poll(self) -> None:
        self._events.publish(ConnectivityEvent("poll", self._online))

    async def run(self, stop: asyncio.Event) -> None:
        """Re-read the link state and emit a poll tick every `poll_interval` seconds until `stop` is set."""
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                self.check_link()
                self.poll()

    def close(self) -> None:
        self._events.close()
