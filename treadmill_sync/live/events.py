"""Ordered fan-out for observable sequences (connection state, live samples, cycle results)."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Generic, TypeVar

logger = logging.getLogger("treadmill_sync.live.events")

T = TypeVar("T")


class EventStream(Generic[T]):
    """Deliver published items to every subscriber in publish order.

    Callbacks run synchronously inside ``publish()``, so they must be quick;
    slow consumers should use ``iterate()`` instead, which buffers per
    subscriber.  Nothing is reordered, batched or dropped.

    Usage::

        unsubscribe = manager.states.subscribe(lambda s: print(s))
        async for sample in manager.samples.iterate():
            ...
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: list[Callable[[T], None]] = []
        self._queues: list[asyncio.Queue[T]] = []
        self._last: T | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def last(self) -> T | None:
        """The most recently published item, if any."""
        return self._last

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback`` for every future item.

        Returns:
            A function that removes the subscription.
        """
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def publish(self, item: T) -> None:
        self._last = item
        for callback in list(self._callbacks):
            try:
                callback(item)
            except Exception:
                logger.exception("%s subscriber %r failed", self._name, callback)
        for queue in self._queues:
            queue.put_nowait(item)

    async def iterate(self) -> AsyncIterator[T]:
        """Yield items published after this call, in order, until cancelled."""
        queue: asyncio.Queue[T] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._queues.remove(queue)

    def __len__(self) -> int:
        return len(self._callbacks) + len(self._queues)
