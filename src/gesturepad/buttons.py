"""Device-independent button and axis identifiers."""

from __future__ import annotations

from enum import StrEnum


class Button(StrEnum):
    """Digital buttons."""

    CROSS = "cross"
    CIRCLE = "circle"
    SQUARE = "square"
    TRIANGLE = "triangle"
    L1 = "L1"
    R1 = "R1"
    SELECT = "select"
    START = "start"
    ANALOG = "analog"
    LEFT_STICK_CLICK = "left_stick_click"
    RIGHT_STICK_CLICK = "right_stick_click"


class Axis(StrEnum):
    """Analog axes. L2 and R2 are delivered as buttons."""

    DPAD_X = "dpad_x"
    DPAD_Y = "dpad_y"
    LEFT_STICK_X = "left_stick_x"
    LEFT_STICK_Y = "left_stick_y"
    RIGHT_STICK_X = "right_stick_x"
    RIGHT_STICK_Y = "right_stick_y"
    L2 = "L2"
    R2 = "R2"


SemanticID = Button | Axis

TRIGGERS: frozenset[Axis] = frozenset({Axis.L2, Axis.R2})


class DirectionGroup(StrEnum):
    """Pairs of axes reported together as an (x, y) direction."""

    DPAD = "dpad"
    LEFT_STICK = "left_stick"
    RIGHT_STICK = "right_stick"

    @property
    def axes(self) -> tuple[Axis, Axis]:
        return GROUP_AXES[self]


GROUP_AXES: dict[DirectionGroup, tuple[Axis, Axis]] = {
    DirectionGroup.DPAD: (Axis.DPAD_X, Axis.DPAD_Y),
    DirectionGroup.LEFT_STICK: (Axis.LEFT_STICK_X, Axis.LEFT_STICK_Y),
    DirectionGroup.RIGHT_STICK: (Axis.RIGHT_STICK_X, Axis.RIGHT_STICK_Y),
}

# Axis -> the direction group it belongs to
AXIS_GROUP: dict[Axis, DirectionGroup] = {
    axis: group for group, pair in GROUP_AXES.items() for axis in pair
}


def parse_semantic_id(name: str) -> SemanticID:
    """Look up a button or axis by its string value."""
    for enum in (Button, Axis):
        try:
            return enum(name)
        except ValueError:
            continue
    raise ValueError(f"Unknown button or axis: {name!r}")
