import asyncio
import logging
import time
from typing import Callable

import cv2  # type: ignore
import numpy as np  # type: ignore

from scanner.events import EventChannel, Subscription

logger = logging.getLogger(__name__)


class CodeReader:
    """
    Turns camera frames into decoded QR payloads.

    Each distinct payload is published once; the same payload seen again
    within `debounce_seconds` is dropped, so a code held in front of the
    camera yields a single scan.
    """

    def __init__(self, *, debounce_seconds: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._detector = cv2.QRCodeDetector()
        self._events: EventChannel[str] = EventChannel()
        self._last_payload: str | None = None
        self._last_at = 0.0

    def subscribe(self) -> Subscription[str]:
        return self._events.subscribe()

    def unsubscribe(self, sub: Subscription[str]) -> None:
        self._events.unsubscribe(sub)

    def decode(self, frame_bgr) -> str | None:
        text, _points, _ = self._detector.detectAndDecode(frame_bgr)
        text = (text or "").strip()
        return text or None

    def decode_image_bytes(self, data: bytes) -> str | None:
        img_array = np.frombuffer(data, np.uint8)
        frame = cv2.imdecode(img_array, cv2.IMREAD_COLOR)
        if frame is None:
            return None
        return self.decode(frame)

    def emit(self, payload: str) -> bool:
        """Publish a decoded payload unless it repeats the last one too soon."""
        payload = payload.strip()
        if not payload:
            return False
        now = self._clock()
        if payload == self._last_payload and now - self._last_at < self.debounce_seconds:
            return False
        self._last_payload = payload
        self._last_at = now
        logger.debug("QR code scanned: %s", payload)
        self._events.publish(payload)
        return True

    def feed_frame(self, frame_bgr) -> str | None:
        payload = self.decode(frame_bgr)
        if payload and self.emit(payload):
            return payload
        return None

    async def run_camera(self, stop: asyncio.Event, *, device: int | str = 0, idle_delay: float = 0.05) -> None:
        """Read frames from a capture device until `stop` is set."""
        capture = cv2.VideoCapture(device)
        if not capture.isOpened():
            raise RuntimeError(f"Camera {device!r} could not be opened")
        try:
            while not stop.is_set():
                ok, frame = await asyncio.to_thread(capture.read)
                if not ok or frame is None:
                    await asyncio.sleep(idle_delay)
                    continue
                payload = await asyncio.to_thread(self.decode, frame)
                if payload:
                    self.emit(payload)
        finally:
            capture.release()

    def close(self) -> None:
        self._events.close()
