"""Raw and translated event records shared by the transport, bus and engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum

MAX_VALUE = (1 << 15) - 1
"""Full-scale magnitude of a signed 16-bit axis value."""


class RawKind(IntEnum):
    """Raw report type, numbered like the kernel joystick API."""

    BUTTON = 1
    AXIS = 2


@dataclass(frozen=True)
class RawEvent:
    """A transport-level report before semantic resolution."""

    elapsed: float
    """Seconds since the transport started reporting."""
    kind: RawKind
    index: int
    value: int


@dataclass(frozen=True)
class ButtonEvent:
    """A raw button report delivered on the bus."""

    elapsed: float
    index: int
    value: int


@dataclass(frozen=True)
class AxisEvent:
    """A raw axis report delivered on the bus."""

    elapsed: float
    index: int
    value: int


class Position(StrEnum):
    UP = "up"
    DOWN = "down"

    @classmethod
    def from_value(cls, value: int) -> Position:
        return cls.DOWN if value > 0 else cls.UP


class Gesture(StrEnum):
    """Time-qualified button events delivered to handlers."""

    UP = "up"
    DOWN = "down"
    CLICK = "click"
    HOLD = "hold"
