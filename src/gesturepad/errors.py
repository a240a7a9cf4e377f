"""Exception hierarchy."""

from __future__ import annotations


class GamepadError(Exception):
    """Base class for all gesturepad errors."""


class ConnectError(GamepadError):
    """Raised when a gamepad cannot be connected."""


class DeviceNotRecognizedError(ConnectError):
    """Raised when no known driver mapping matches the device identity."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"Device not recognized: {identity!r}" if identity else "No device found")
        self.identity = identity


class DeviceOpenError(ConnectError):
    """Raised when the device node or USB interface cannot be opened."""


class ReportError(GamepadError):
    """Raised when a polled report is malformed."""
