from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Callable
from contextlib import suppress
from typing import Any
from typing import Generic
from typing import TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)


class EventChannel(Generic[T]):
    """
    A named publish point that fans a value out to its subscribers.

    Values are never delivered inline: :meth:`publish` hands them to the
    owning :class:`EventHub`, whose single consumer task delivers every
    event in publish order.

    Attributes:
        name (str): Channel name, used in log messages.
        latest (T | None): The most recently delivered value.
    """

    def __init__(self, name: str, hub: EventHub) -> None:
        self.name = name
        self.latest: T | None = None
        self._hub = hub
        self._subscribers: list[Callable[[T], Any]] = []

    def subscribe(self, callback: Callable[[T], Any]) -> Callable[[], None]:
        """
        Register a callback for every future value.

        Args:
            callback (Callable[[T], Any]): Plain function or coroutine
                function receiving the published value.

        Returns:
            Callable[[], None]: A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        """
        Queue a value for delivery. Safe to call from any thread.

        Args:
            value (T): The value to publish.
        """
        self._hub.post(self, value)

    async def _deliver(self, value: T) -> None:
        self.latest = value
        for callback in list(self._subscribers):
            try:
                result = callback(value)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    'Subscriber %r on channel %s failed', callback, self.name,
                )


class EventHub:
    """
    Serialises all externally observable state changes onto one task.

    Producers (the transport read loop, the inference worker, the capture
    worker) only ever enqueue; the consumer loop is the sole place where
    subscribers run, so observers never race each other.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[tuple[EventChannel, Any]] = asyncio.Queue()
        self._channels: dict[str, EventChannel] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread_id: int | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def channel(self, name: str) -> EventChannel:
        """
        Return the channel with the given name, creating it on first use.

        Args:
            name (str): Channel name.

        Returns:
            EventChannel: The shared channel instance.
        """
        if name not in self._channels:
            self._channels[name] = EventChannel(name, self)
        return self._channels[name]

    def start(self) -> None:
        """Start the consumer task on the running event loop."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._thread_id = threading.get_ident()
        self._task = self._loop.create_task(self._consume())

    async def stop(self) -> None:
        """Cancel the consumer task. Undelivered events are discarded."""
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def join(self) -> None:
        """Wait until every queued event has been delivered."""
        await self._queue.join()

    def post(self, channel: EventChannel, value: Any) -> None:
        """
        Enqueue an event, hopping onto the hub's loop when needed.

        Args:
            channel (EventChannel): Target channel.
            value (Any): Value to deliver.
        """
        item = (channel, value)
        if (
            self._loop is not None
            and threading.get_ident() != self._thread_id
        ):
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
            return
        self._queue.put_nowait(item)

    async def _consume(self) -> None:
        while True:
            channel, value = await self._queue.get()
            try:
                await channel._deliver(value)
            finally:
                self._queue.task_done()
