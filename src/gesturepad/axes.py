"""Axis cache and two-axis direction composition."""

from __future__ import annotations

from gesturepad.buttons import Axis, DirectionGroup
from gesturepad.events import MAX_VALUE


def _scale(value: int) -> float:
    return max(-1.0, min(1.0, value / MAX_VALUE))


class AxisCache:
    """Last known raw value of every axis."""

    def __init__(self) -> None:
        self._values: dict[Axis, int] = {axis: 0 for axis in Axis}

    def __getitem__(self, axis: Axis) -> int:
        return self._values[axis]

    def update(self, axis: Axis, value: int) -> None:
        self._values[axis] = value

    def direction(self, group: DirectionGroup, inverted_y: bool = False) -> tuple[float, float]:
        """Return the group's (x, y) scaled to [-1.0, 1.0]."""
        x_axis, y_axis = group.axes
        x = _scale(self._values[x_axis])
        y = _scale(self._values[y_axis])
        if inverted_y:
            y = -y
        return x, y
