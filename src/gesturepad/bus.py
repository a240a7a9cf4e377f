"""Event bus: routes raw events onto bounded, typed streams."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Generic, TypeVar

from gesturepad.events import AxisEvent, ButtonEvent, RawEvent, RawKind

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_TIMEOUT = 0.020
"""Seconds the dispatcher waits for a consumer before dropping an event."""

T = TypeVar("T")


class EventStream(Generic[T]):
    """Bounded single-consumer stream that can be closed by its writer.

    ``get()`` returns None once the stream is closed and drained.
    """

    def __init__(self, capacity: int = 1) -> None:
        self._queue: asyncio.Queue[T | None] = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("put() on a closed stream")
        await self._queue.put(item)

    async def get(self) -> T | None:
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        """Close the stream. Items already queued are still delivered."""
        if self._closed:
            return
        self._closed = True
        # A full queue wakes its reader anyway; the flag ends it once drained
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            item = await self.get()
            if item is None:
                break
            yield item


class Dispatcher:
    """Single coordinator between a transport and the gamepad engine.

    Raw events are published onto an unbounded ingress queue without blocking
    the transport. :meth:`run` classifies each one and hands it to the
    matching typed stream, waiting at most ``timeout`` seconds for the
    consumer; late events are dropped, never retried.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
        capacity: int = 1,
        on_drop: Callable[[RawEvent], None] | None = None,
    ) -> None:
        self._timeout = timeout
        self._on_drop = on_drop
        self._ingress: asyncio.Queue[RawEvent | None] = asyncio.Queue()
        self.buttons: EventStream[ButtonEvent] = EventStream(capacity)
        self.axes: EventStream[AxisEvent] = EventStream(capacity)
        self.dropped = 0

    def publish(self, event: RawEvent) -> None:
        """Queue a raw event for dispatch. Never blocks."""
        self._ingress.put_nowait(event)

    def close_ingress(self) -> None:
        """Signal that the transport will publish no more events."""
        self._ingress.put_nowait(None)

    async def run(self) -> None:
        """Dispatch until the ingress ends or the task is cancelled."""
        try:
            while True:
                event = await self._ingress.get()
                if event is None:
                    logger.debug("Ingress closed, dispatcher stopping.")
                    break
                await self.dispatch(event)
        finally:
            self.buttons.close()
            self.axes.close()

    async def dispatch(self, event: RawEvent) -> bool:
        """Deliver one raw event. Returns False if it was dropped."""
        if event.kind == RawKind.BUTTON:
            delivered = await self._deliver(
                self.buttons, ButtonEvent(event.elapsed, event.index, event.value)
            )
        elif event.kind == RawKind.AXIS:
            delivered = await self._deliver(
                self.axes, AxisEvent(event.elapsed, event.index, event.value)
            )
        else:
            logger.debug("Ignoring raw event of unknown kind: %r", event)
            return False

        if not delivered:
            self.dropped += 1
            logger.warning(
                "%s event dropped, index: %d", event.kind.name.capitalize(), event.index
            )
            if self._on_drop is not None:
                self._on_drop(event)
        return delivered

    async def _deliver(self, stream: EventStream[T], item: T) -> bool:
        try:
            await asyncio.wait_for(stream.put(item), timeout=self._timeout)
        except TimeoutError:
            return False
        return True
