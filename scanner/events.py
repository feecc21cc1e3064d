import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class Subscription(Generic[T]):
    """
    Ordered stream of events for one subscriber.

    Every event published while subscribed is delivered once, in publish
    order. Iterate with `async for`; iteration ends after unsubscribe.
    """

    def __init__(self, channel: "EventChannel[T]"):
        self._channel = channel
        self._queue: asyncio.Queue[tuple[bool, T | None]] = asyncio.Queue()

    def _deliver(self, event: T) -> None:
        self._queue.put_nowait((True, event))

    def _end(self) -> None:
        self._queue.put_nowait((False, None))

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        alive, event = await self._queue.get()
        if not alive:
            raise StopAsyncIteration
        return event  # type: ignore[return-value]


class EventChannel(Generic[T]):
    def __init__(self):
        self._subscribers: list[Subscription[T]] = []

    def subscribe(self) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self)
        self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription[T]) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
            sub._end()

    def publish(self, event: T) -> None:
        for sub in list(self._subscribers):
            sub._deliver(event)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        for sub in list(self._subscribers):
            self.unsubscribe(sub)
