"""Raw transport abstraction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from gesturepad.events import RawEvent


class RawTransport(ABC):
    """A connected device producing raw events.

    The event sequence ends when the device disconnects, fails to read, or
    the transport is stopped.
    """

    @property
    @abstractmethod
    def identity(self) -> str:
        """Device identity string used to select the driver mapping."""

    @abstractmethod
    async def start(self) -> None:
        """Open the device and start producing events."""

    @abstractmethod
    async def stop(self) -> None:
        """Release the device and end the event sequence."""

    @abstractmethod
    def events(self) -> AsyncIterator[RawEvent]:
        """Yield raw events in non-decreasing time order."""

    async def __aenter__(self) -> RawTransport:
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.stop()
