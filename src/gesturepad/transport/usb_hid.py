"""Polled USB HID transport for the wired X-Box 360 pad, built on pyusb."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import AsyncIterator
from typing import Any

import usb.core
import usb.util

from gesturepad.edges import EdgeSynthesizer
from gesturepad.errors import DeviceOpenError, ReportError
from gesturepad.events import RawEvent
from gesturepad.mapping import USB_HID_DRIVER
from gesturepad.transport.base import RawTransport

logger = logging.getLogger(__name__)

XBOX_360_VID = 0x045E
XBOX_360_PID = 0x028E
CONFIGURATION = 1
INTERFACE = 0
IN_ENDPOINT = 0x81
READ_TIMEOUT_MS = 100

_INPUT_REPORT = 0x00


class UsbHidTransport(RawTransport):
    """Claims the controller's interrupt endpoint and polls input reports.

    Reports are read in a worker thread, turned into edge events by an
    :class:`~gesturepad.edges.EdgeSynthesizer` and handed back to the event
    loop.
    """

    def __init__(self, vid: int = XBOX_360_VID, pid: int = XBOX_360_PID) -> None:
        self._vid = vid
        self._pid = pid
        self._device: Any = None
        self._endpoint: Any = None
        self._detached = False
        self._queue: asyncio.Queue[RawEvent | None] = asyncio.Queue()
        self._stop = threading.Event()
        self._poll_task: asyncio.Task[None] | None = None
        self._synth = EdgeSynthesizer()

    @property
    def identity(self) -> str:
        return USB_HID_DRIVER

    async def start(self) -> None:
        self._open()
        self._stop.clear()
        self._synth.reset()
        loop = asyncio.get_running_loop()
        self._poll_task = asyncio.create_task(
            asyncio.to_thread(self._poll_loop, loop), name="usb-hid-transport"
        )

    async def stop(self) -> None:
        self._stop.set()
        if self._poll_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        self._close()
        await self._queue.put(None)  # sentinel

    async def events(self) -> AsyncIterator[RawEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event

    # --- Internal ---

    def _open(self) -> None:
        dev = usb.core.find(idVendor=self._vid, idProduct=self._pid)
        if dev is None:
            raise DeviceOpenError(f"No USB device {self._vid:04x}:{self._pid:04x}")
        try:
            with contextlib.suppress(NotImplementedError):
                if dev.is_kernel_driver_active(INTERFACE):
                    dev.detach_kernel_driver(INTERFACE)
                    self._detached = True
            dev.set_configuration(CONFIGURATION)
            usb.util.claim_interface(dev, INTERFACE)
            intf = dev.get_active_configuration()[(INTERFACE, 0)]
            endpoint = usb.util.find_descriptor(intf, bEndpointAddress=IN_ENDPOINT)
        except usb.core.USBError as e:
            usb.util.dispose_resources(dev)
            raise DeviceOpenError(f"Failed to claim USB interface: {e}") from e
        if endpoint is None:
            usb.util.dispose_resources(dev)
            raise DeviceOpenError(f"Invalid input endpoint for device: {IN_ENDPOINT:#04x}")

        self._device = dev
        self._endpoint = endpoint
        logger.info("Opened USB device %04x:%04x", self._vid, self._pid)

    def _close(self) -> None:
        if self._device is None:
            return
        with contextlib.suppress(usb.core.USBError):
            usb.util.release_interface(self._device, INTERFACE)
            if self._detached:
                self._device.attach_kernel_driver(INTERFACE)
        usb.util.dispose_resources(self._device)
        self._device = None
        self._endpoint = None
        self._detached = False
        logger.info("USB device released.")

    def _poll_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Blocking read loop (runs in thread)."""
        started = time.monotonic()
        size = self._endpoint.wMaxPacketSize
        try:
            while not self._stop.is_set():
                try:
                    report = bytes(self._endpoint.read(size, timeout=READ_TIMEOUT_MS))
                except usb.core.USBTimeoutError:
                    continue
                if not report:
                    logger.warning("Device returned 0 bytes of data.")
                    break
                if report[0] != _INPUT_REPORT:
                    continue  # LED and status messages
                for event in self._synth.feed(report, time.monotonic() - started):
                    loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except (usb.core.USBError, ReportError) as e:
            logger.warning("USB read failed: %s", e)
        finally:
            loop.call_soon_threadsafe(self._queue.put_nowait, None)
