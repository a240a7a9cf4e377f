"""Raw transports: the device side of the pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from gesturepad.transport.base import RawTransport

if TYPE_CHECKING:
    from gesturepad.config import GamepadConfig

__all__ = ["RawTransport", "create_transport"]


def create_transport(config: GamepadConfig) -> RawTransport:
    """Build the transport selected by ``config.transport``."""
    if config.transport == "usb":
        from gesturepad.transport.usb_hid import UsbHidTransport

        return UsbHidTransport()

    from gesturepad.transport.kernel import EvdevTransport

    return EvdevTransport(config.device_path, config.mappings())
