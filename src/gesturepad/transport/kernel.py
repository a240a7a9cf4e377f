"""Kernel input transport built on evdev."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Mapping

import evdev

from gesturepad.errors import DeviceNotRecognizedError, DeviceOpenError
from gesturepad.events import MAX_VALUE, RawEvent, RawKind
from gesturepad.mapping import DEFAULT_DRIVER_MAPPINGS, InputMapping, match_identity
from gesturepad.transport.base import RawTransport

logger = logging.getLogger(__name__)

_KEY_REPEAT = 2


def button_indices(key_codes: list[int]) -> dict[int, int]:
    """Number key codes the way the kernel joystick interface does.

    Codes from BTN_JOYSTICK up come first, then the BTN_MISC range; codes
    below BTN_MISC are not joystick buttons.
    """
    ecodes = evdev.ecodes
    codes = sorted(code for code in key_codes if code >= ecodes.BTN_MISC)
    ordered = [c for c in codes if c >= ecodes.BTN_JOYSTICK] + [
        c for c in codes if c < ecodes.BTN_JOYSTICK
    ]
    return {code: index for index, code in enumerate(ordered)}


def axis_indices(abs_codes: list[int]) -> dict[int, int]:
    """Number ABS codes in ascending order."""
    return {code: index for index, code in enumerate(sorted(abs_codes))}


def scale_axis(value: int, minimum: int, maximum: int) -> int:
    """Map ``value`` from the device range onto ``[-MAX_VALUE, MAX_VALUE]``."""
    if maximum <= minimum:
        return 0
    center = (maximum + minimum) / 2
    scaled = round((value - center) * 2 * MAX_VALUE / (maximum - minimum))
    return max(-MAX_VALUE, min(MAX_VALUE, scaled))


class EvdevTransport(RawTransport):
    """Reads a kernel input device and reports joystick-style raw events.

    Usage::

        async with EvdevTransport() as transport:
            async for event in transport.events():
                ...
    """

    def __init__(
        self,
        device_path: str = "",
        mappings: Mapping[str, InputMapping] = DEFAULT_DRIVER_MAPPINGS,
    ) -> None:
        self._device_path = device_path
        self._mappings = mappings
        self._device: evdev.InputDevice[str] | None = None
        self._queue: asyncio.Queue[RawEvent | None] = asyncio.Queue()
        self._read_task: asyncio.Task[None] | None = None
        self._running = False
        self._buttons: dict[int, int] = {}
        self._axes: dict[int, int] = {}
        self._ranges: dict[int, tuple[int, int]] = {}
        self._first_timestamp: float | None = None

    @property
    def identity(self) -> str:
        if self._device is None:
            return ""
        return self._device.name.strip()

    @property
    def device_path(self) -> str:
        return self._device_path

    async def start(self) -> None:
        """Open the device and start reading events."""
        if not self._device_path:
            self._device_path = self.discover(self._mappings)

        try:
            self._device = evdev.InputDevice(self._device_path)
        except OSError as e:
            raise DeviceOpenError(f"Failed to open {self._device_path}: {e}") from e
        logger.info("Opened device: %s (%s)", self._device.name, self._device_path)

        self._index_capabilities(self._device)
        self._running = True
        self._read_task = asyncio.create_task(self._read_loop(), name="evdev-transport")

    async def stop(self) -> None:
        """Stop reading and release the device."""
        self._running = False
        await self._queue.put(None)  # sentinel

        if self._read_task is not None:
            self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._read_task
            self._read_task = None

        if self._device is not None:
            self._device.close()
            self._device = None
            logger.info("Device released.")

    async def events(self) -> AsyncIterator[RawEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event

    @staticmethod
    def discover(mappings: Mapping[str, InputMapping] = DEFAULT_DRIVER_MAPPINGS) -> str:
        """Return the path of the first input device with a known identity."""
        for path in evdev.list_devices():
            try:
                dev = evdev.InputDevice(path)
            except (PermissionError, OSError):
                continue
            try:
                name = dev.name
            except OSError:
                continue
            finally:
                dev.close()
            if match_identity(name, mappings) is not None:
                logger.info("Found device %s: %s", path, name.strip())
                return path
        raise DeviceNotRecognizedError("")

    # --- Internal ---

    def _index_capabilities(self, device: evdev.InputDevice[str]) -> None:
        caps = device.capabilities(absinfo=True)
        self._buttons = button_indices(list(caps.get(evdev.ecodes.EV_KEY, [])))
        abs_caps = caps.get(evdev.ecodes.EV_ABS, [])
        self._axes = axis_indices([code for code, _ in abs_caps])
        self._ranges = {code: (info.min, info.max) for code, info in abs_caps}
        logger.debug("Device reports %d buttons, %d axes", len(self._buttons), len(self._axes))

    def _elapsed(self, ev: evdev.InputEvent) -> float:
        timestamp = ev.timestamp()
        if self._first_timestamp is None:
            self._first_timestamp = timestamp
        return max(0.0, timestamp - self._first_timestamp)

    def _translate(self, ev: evdev.InputEvent) -> RawEvent | None:
        if ev.type == evdev.ecodes.EV_KEY:
            index = self._buttons.get(ev.code)
            if index is None or ev.value == _KEY_REPEAT:
                return None
            return RawEvent(self._elapsed(ev), RawKind.BUTTON, index, ev.value)

        if ev.type == evdev.ecodes.EV_ABS:
            index = self._axes.get(ev.code)
            if index is None:
                return None
            value = scale_axis(ev.value, *self._ranges[ev.code])
            return RawEvent(self._elapsed(ev), RawKind.AXIS, index, value)

        return None

    async def _read_loop(self) -> None:
        """Main event reading loop."""
        if self._device is None:
            return
        try:
            async for ev in self._device.async_read_loop():
                if not self._running:
                    break
                event = self._translate(ev)
                if event is not None:
                    await self._queue.put(event)
        except OSError as e:
            logger.warning("Device read failed: %s", e)
        finally:
            self._queue.put_nowait(None)
