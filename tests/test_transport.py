"""Tests for the evdev and USB HID transports."""

from __future__ import annotations

import asyncio
import struct
from unittest.mock import MagicMock, PropertyMock, patch

import evdev
import pytest
import usb.core

from gesturepad.buttons import Button
from gesturepad.config import GamepadConfig
from gesturepad.edges import CROSS_BUTTON, LEFT_X_AXIS
from gesturepad.engine import Gamepad
from gesturepad.errors import DeviceNotRecognizedError, DeviceOpenError
from gesturepad.events import MAX_VALUE, Gesture, RawEvent, RawKind
from gesturepad.mapping import USB_HID_DRIVER
from gesturepad.transport import create_transport
from gesturepad.transport.kernel import (
    EvdevTransport,
    axis_indices,
    button_indices,
    scale_axis,
)
from gesturepad.transport.usb_hid import UsbHidTransport

ecodes = evdev.ecodes

XPAD_KEYS = [
    ecodes.BTN_A,
    ecodes.BTN_B,
    ecodes.BTN_X,
    ecodes.BTN_Y,
    ecodes.BTN_TL,
    ecodes.BTN_TR,
    ecodes.BTN_SELECT,
    ecodes.BTN_START,
    ecodes.BTN_MODE,
    ecodes.BTN_THUMBL,
    ecodes.BTN_THUMBR,
]


def absinfo(minimum: int, maximum: int) -> evdev.AbsInfo:
    return evdev.AbsInfo(value=0, min=minimum, max=maximum, fuzz=0, flat=0, resolution=0)


XPAD_ABS = [
    (ecodes.ABS_X, absinfo(-32768, 32767)),
    (ecodes.ABS_Y, absinfo(-32768, 32767)),
    (ecodes.ABS_Z, absinfo(0, 255)),
    (ecodes.ABS_RX, absinfo(-32768, 32767)),
    (ecodes.ABS_RY, absinfo(-32768, 32767)),
    (ecodes.ABS_RZ, absinfo(0, 255)),
    (ecodes.ABS_HAT0X, absinfo(-1, 1)),
    (ecodes.ABS_HAT0Y, absinfo(-1, 1)),
]


def mock_xpad(events: list[evdev.InputEvent], name: str = "Microsoft X-Box 360 pad\n"):
    device = MagicMock()
    device.name = name
    device.capabilities.return_value = {
        ecodes.EV_SYN: [0],
        ecodes.EV_KEY: [ecodes.KEY_ESC, *reversed(XPAD_KEYS)],
        ecodes.EV_ABS: XPAD_ABS,
    }

    async def read_loop():
        for ev in events:
            yield ev
        await asyncio.sleep(0)

    device.async_read_loop.return_value = read_loop()
    return device


def ev(sec: float, type_: int, code: int, value: int) -> evdev.InputEvent:
    return evdev.InputEvent(int(sec), int(round(sec % 1 * 1_000_000)), type_, code, value)


# --- Kernel transport ---


def test_button_indices_follow_joystick_numbering():
    indices = button_indices([ecodes.KEY_ESC, ecodes.BTN_0, *XPAD_KEYS])
    assert [indices[code] for code in XPAD_KEYS] == list(range(11))
    # BTN_MISC range is numbered after the joystick range
    assert indices[ecodes.BTN_0] == 11
    assert ecodes.KEY_ESC not in indices


def test_axis_indices_ascending():
    indices = axis_indices([ecodes.ABS_HAT0Y, ecodes.ABS_X, ecodes.ABS_HAT0X, ecodes.ABS_Z])
    assert indices == {ecodes.ABS_X: 0, ecodes.ABS_Z: 1, ecodes.ABS_HAT0X: 2, ecodes.ABS_HAT0Y: 3}


def test_scale_axis():
    assert scale_axis(1, -1, 1) == MAX_VALUE
    assert scale_axis(-1, -1, 1) == -MAX_VALUE
    assert scale_axis(0, -1, 1) == 0
    assert scale_axis(0, 0, 255) == -MAX_VALUE
    assert scale_axis(255, 0, 255) == MAX_VALUE
    assert scale_axis(-32768, -32768, 32767) == -MAX_VALUE
    assert scale_axis(16384, -32768, 32767) == 16384
    assert scale_axis(5, 5, 5) == 0


@pytest.mark.asyncio
async def test_evdev_transport_events():
    device = mock_xpad(
        [
            ev(100.0, ecodes.EV_KEY, ecodes.BTN_A, 1),
            ev(100.0, ecodes.EV_SYN, 0, 0),
            ev(100.05, ecodes.EV_KEY, ecodes.BTN_A, 2),  # autorepeat
            ev(100.1, ecodes.EV_KEY, ecodes.BTN_A, 0),
            ev(100.2, ecodes.EV_ABS, ecodes.ABS_HAT0X, 1),
            ev(100.3, ecodes.EV_ABS, ecodes.ABS_RZ, 255),
            ev(100.4, ecodes.EV_KEY, ecodes.KEY_ESC, 1),
        ]
    )

    with patch("evdev.InputDevice", return_value=device):
        transport = EvdevTransport("/dev/input/event0")
        await transport.start()
        assert transport.identity == "Microsoft X-Box 360 pad"

        events = []
        async for event in transport.events():
            events.append(event)

        await transport.stop()

    assert [(e.kind, e.index, e.value) for e in events] == [
        (RawKind.BUTTON, 0, 1),
        (RawKind.BUTTON, 0, 0),
        (RawKind.AXIS, 6, MAX_VALUE),
        (RawKind.AXIS, 5, MAX_VALUE),
    ]
    assert events[0].elapsed == 0.0
    assert events[1].elapsed == pytest.approx(0.1)
    device.close.assert_called_once()


@pytest.mark.asyncio
async def test_evdev_transport_read_error_ends_sequence():
    device = mock_xpad([])

    async def failing_loop():
        yield ev(1.0, ecodes.EV_KEY, ecodes.BTN_B, 1)
        raise OSError(19, "No such device")

    device.async_read_loop.return_value = failing_loop()

    with patch("evdev.InputDevice", return_value=device):
        transport = EvdevTransport("/dev/input/event3")
        await transport.start()
        events = [event async for event in transport.events()]
        await transport.stop()

    assert events == [RawEvent(0.0, RawKind.BUTTON, 1, 1)]


@pytest.mark.asyncio
async def test_evdev_transport_open_failure():
    with patch("evdev.InputDevice", side_effect=PermissionError(13, "Permission denied")):
        transport = EvdevTransport("/dev/input/event0")
        with pytest.raises(DeviceOpenError, match="Permission denied"):
            await transport.start()


def test_discover_first_known_device():
    keyboard = MagicMock()
    keyboard.name = "AT Translated Set 2 keyboard"
    pad = MagicMock()
    pad.name = "Microsoft X-Box 360 pad"

    with (
        patch("evdev.list_devices", return_value=["/dev/input/event0", "/dev/input/event5"]),
        patch("evdev.InputDevice", side_effect=[keyboard, pad]),
    ):
        assert EvdevTransport.discover() == "/dev/input/event5"

    keyboard.close.assert_called_once()
    pad.close.assert_called_once()


def test_discover_no_known_device():
    keyboard = MagicMock()
    keyboard.name = "AT Translated Set 2 keyboard"

    with (
        patch("evdev.list_devices", return_value=["/dev/input/event0", "/dev/input/event1"]),
        patch("evdev.InputDevice", side_effect=[keyboard, PermissionError()]),
    ):
        with pytest.raises(DeviceNotRecognizedError, match="No device found"):
            EvdevTransport.discover()


@pytest.mark.asyncio
async def test_gamepad_over_evdev_cross_click():
    device = mock_xpad(
        [
            ev(10.0, ecodes.EV_KEY, ecodes.BTN_A, 1),
            ev(10.05, ecodes.EV_KEY, ecodes.BTN_A, 0),
        ]
    )
    seen = []

    with (
        patch("evdev.list_devices", return_value=["/dev/input/event7"]),
        patch("evdev.InputDevice", return_value=device),
    ):
        gamepad = await Gamepad.connect(GamepadConfig())
        gamepad.on_button(Button.CROSS, seen.append)
        await asyncio.wait_for(gamepad.wait_closed(), timeout=2)
        await gamepad.close()

    assert seen == [Gesture.DOWN, Gesture.UP, Gesture.CLICK]


def test_create_transport():
    assert isinstance(create_transport(GamepadConfig()), EvdevTransport)
    assert isinstance(create_transport(GamepadConfig(transport="usb")), UsbHidTransport)


# --- USB HID transport ---


def usb_report(actions: int = 0, left_x: int = 0) -> bytes:
    return bytes([0x00, 0x14, 0, actions << 4, 0, 0]) + struct.pack("<hhhh", left_x, 0, 0, 0) + bytes(6)


@pytest.fixture
def usb_device():
    dev = MagicMock()
    dev.is_kernel_driver_active.return_value = True
    endpoint = MagicMock()
    endpoint.wMaxPacketSize = 32

    with (
        patch("usb.core.find", return_value=dev) as find,
        patch("usb.util.claim_interface") as claim,
        patch("usb.util.find_descriptor", return_value=endpoint),
        patch("usb.util.release_interface") as release,
        patch("usb.util.dispose_resources") as dispose,
    ):
        yield dev, endpoint, find, claim, release, dispose


@pytest.mark.asyncio
async def test_usb_transport_events(usb_device):
    dev, endpoint, find, claim, release, dispose = usb_device
    endpoint.read.side_effect = [
        usb_report(actions=1),
        usb.core.USBTimeoutError("Operation timed out"),
        bytes([0x01, 0x03, 0x06]),  # LED status message
        usb_report(actions=1, left_x=-1200),
        usb_report(),
        usb.core.USBError("No such device"),
    ]

    transport = UsbHidTransport()
    assert transport.identity == USB_HID_DRIVER
    await transport.start()
    events = [event async for event in transport.events()]
    await transport.stop()

    assert [(e.kind, e.index, e.value) for e in events] == [
        (RawKind.BUTTON, CROSS_BUTTON, 1),
        (RawKind.AXIS, LEFT_X_AXIS, -1200),
        (RawKind.BUTTON, CROSS_BUTTON, 0),
        (RawKind.AXIS, LEFT_X_AXIS, 0),
    ]
    find.assert_called_once_with(idVendor=0x045E, idProduct=0x028E)
    dev.detach_kernel_driver.assert_called_once_with(0)
    dev.set_configuration.assert_called_once_with(1)
    claim.assert_called_once_with(dev, 0)
    release.assert_called_once_with(dev, 0)
    dev.attach_kernel_driver.assert_called_once_with(0)
    dispose.assert_called_once_with(dev)


@pytest.mark.asyncio
async def test_usb_transport_device_missing():
    with patch("usb.core.find", return_value=None):
        with pytest.raises(DeviceOpenError, match="045e:028e"):
            await UsbHidTransport().start()


@pytest.mark.asyncio
async def test_usb_transport_claim_failure(usb_device):
    dev, _, _, claim, _, dispose = usb_device
    claim.side_effect = usb.core.USBError("Resource busy")
    with pytest.raises(DeviceOpenError, match="Resource busy"):
        await UsbHidTransport().start()
    dispose.assert_called_once_with(dev)


@pytest.mark.asyncio
async def test_gamepad_over_usb_cross_click(usb_device):
    _, endpoint, *_ = usb_device
    endpoint.read.side_effect = [
        usb_report(actions=1),
        usb_report(),
        usb.core.USBError("No such device"),
    ]
    seen = []

    gamepad = await Gamepad.connect(GamepadConfig(transport="usb"))
    gamepad.on_button(Button.CROSS, seen.append, [Gesture.DOWN, Gesture.UP, Gesture.CLICK])
    await asyncio.wait_for(gamepad.wait_closed(), timeout=2)
    await gamepad.close()

    assert seen == [Gesture.DOWN, Gesture.UP, Gesture.CLICK]


def test_discover_closes_device_when_name_unreadable():
    broken = MagicMock()
    type(broken).name = PropertyMock(side_effect=OSError(19, "No such device"))
    pad = MagicMock()
    pad.name = "Microsoft X-Box 360 pad"

    with (
        patch("evdev.list_devices", return_value=["/dev/input/event2", "/dev/input/event5"]),
        patch("evdev.InputDevice", side_effect=[broken, pad]),
    ):
        assert EvdevTransport.discover() == "/dev/input/event5"

    broken.close.assert_called_once()
    pad.close.assert_called_once()
