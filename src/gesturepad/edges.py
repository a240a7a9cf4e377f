"""Edge synthesis for polled USB HID reports.

A polled transport only sees absolute snapshots of the controller state. The
:class:`EdgeSynthesizer` compares each snapshot against the previous one and
emits a :class:`~gesturepad.events.RawEvent` for every field that changed, so
polled devices present the same event-driven contract as the kernel
transport.

Report layout of the wired X-Box 360 pad (20 bytes)::

    byte 2   high nibble: start=1 select=2 left-stick=4 right-stick=8
             low nibble:  dpad up=1 down=2 left=4 right=8
    byte 3   high nibble: cross=1 circle=2 square=4 triangle=8
             low nibble:  L1=1 R1=2 analog=4
    byte 4   L2 (0-255)
    byte 5   R2 (0-255)
    6..13    left x, left y, right x, right y (int16 little-endian)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from gesturepad.errors import ReportError
from gesturepad.events import MAX_VALUE, RawEvent, RawKind

REPORT_SIZE = 14
"""Minimum number of bytes needed to decode a report."""

# Raw indices, consumed by gesturepad.mapping.USB_HID_MAPPING
START_BUTTON = 1
SELECT_BUTTON = 2
LEFT_STICK_BUTTON = 3
RIGHT_STICK_BUTTON = 4
DPAD_X_AXIS = 5
DPAD_Y_AXIS = 6
CROSS_BUTTON = 7
CIRCLE_BUTTON = 8
SQUARE_BUTTON = 9
TRIANGLE_BUTTON = 10
L1_BUTTON = 11
R1_BUTTON = 12
ANALOG_BUTTON = 13
L2_AXIS = 14
R2_AXIS = 15
LEFT_X_AXIS = 16
LEFT_Y_AXIS = 17
RIGHT_X_AXIS = 18
RIGHT_Y_AXIS = 19


@dataclass(frozen=True)
class _Bit:
    """A digital field: ``(byte, high nibble?, mask)``."""

    byte: int
    high: bool
    mask: int

    def read(self, report: bytes) -> bool:
        value = report[self.byte]
        nibble = value >> 4 if self.high else value & 0x0F
        return nibble & self.mask == self.mask


_BUTTONS: tuple[tuple[int, _Bit], ...] = (
    (START_BUTTON, _Bit(2, True, 1)),
    (SELECT_BUTTON, _Bit(2, True, 2)),
    (LEFT_STICK_BUTTON, _Bit(2, True, 4)),
    (RIGHT_STICK_BUTTON, _Bit(2, True, 8)),
    (CROSS_BUTTON, _Bit(3, True, 1)),
    (CIRCLE_BUTTON, _Bit(3, True, 2)),
    (SQUARE_BUTTON, _Bit(3, True, 4)),
    (TRIANGLE_BUTTON, _Bit(3, True, 8)),
    (L1_BUTTON, _Bit(3, False, 1)),
    (R1_BUTTON, _Bit(3, False, 2)),
    (ANALOG_BUTTON, _Bit(3, False, 4)),
)

# D-pad directions are digital bits reported as one full-scale value per axis:
# (axis, negative direction, positive direction)
_DPAD: tuple[tuple[int, _Bit, _Bit], ...] = (
    (DPAD_X_AXIS, _Bit(2, False, 4), _Bit(2, False, 8)),  # left, right
    (DPAD_Y_AXIS, _Bit(2, False, 2), _Bit(2, False, 1)),  # down, up
)

_TRIGGERS: tuple[tuple[int, int], ...] = ((L2_AXIS, 4), (R2_AXIS, 5))

_STICKS: tuple[tuple[int, int], ...] = (
    (LEFT_X_AXIS, 6),
    (LEFT_Y_AXIS, 8),
    (RIGHT_X_AXIS, 10),
    (RIGHT_Y_AXIS, 12),
)


class EdgeSynthesizer:
    """Turns successive polled reports into rising/falling edge events."""

    def __init__(self) -> None:
        self._buttons: dict[int, bool] = {}
        self._dpad: dict[int, int] = {}
        self._triggers: dict[int, bool] = {}
        self._sticks: dict[int, int] = {}
        self.reset()

    def reset(self) -> None:
        """Forget the previous snapshot."""
        self._buttons = {index: False for index, _ in _BUTTONS}
        self._dpad = {index: 0 for index, *_ in _DPAD}
        self._triggers = {index: False for index, _ in _TRIGGERS}
        self._sticks = {index: 0 for index, _ in _STICKS}

    def feed(self, report: bytes, elapsed: float) -> list[RawEvent]:
        """Return the edge events between the previous report and ``report``."""
        if len(report) < REPORT_SIZE:
            raise ReportError(f"Short report: {len(report)} bytes, need {REPORT_SIZE}")

        events: list[RawEvent] = []

        def emit(kind: RawKind, index: int, value: int) -> None:
            events.append(RawEvent(elapsed=elapsed, kind=kind, index=index, value=value))

        for index, bit in _BUTTONS:
            pressed = bit.read(report)
            if pressed != self._buttons[index]:
                self._buttons[index] = pressed
                emit(RawKind.BUTTON, index, 1 if pressed else 0)

        for index, negative, positive in _DPAD:
            # Opposite directions held together cancel out
            value = (positive.read(report) - negative.read(report)) * MAX_VALUE
            if value != self._dpad[index]:
                self._dpad[index] = value
                emit(RawKind.AXIS, index, value)

        for index, offset in _TRIGGERS:
            pulled = report[offset] != 0
            if pulled != self._triggers[index]:
                self._triggers[index] = pulled
                emit(RawKind.AXIS, index, MAX_VALUE if pulled else 0)

        for index, offset in _STICKS:
            (value,) = struct.unpack_from("<h", report, offset)
            if value != self._sticks[index]:
                self._sticks[index] = value
                emit(RawKind.AXIS, index, value)

        return events
