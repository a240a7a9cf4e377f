"""Driver mapping tables: raw (kind, index) -> semantic identifier."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import NamedTuple

from gesturepad.buttons import Axis, Button, SemanticID, parse_semantic_id
from gesturepad.errors import DeviceNotRecognizedError
from gesturepad.events import RawKind

logger = logging.getLogger(__name__)

XBOX_360_PAD = "Microsoft X-Box 360 pad"
"""Kernel name of the xpad joystick driver."""

USB_HID_DRIVER = "X-Box 360 USB HID"
"""Identity reported by the polled USB HID transport."""


class RawInput(NamedTuple):
    """Mapping key: a raw report kind and its device-specific index."""

    kind: RawKind
    index: int

    def __str__(self) -> str:
        return f"{self.kind.name.lower()}:{self.index}"

    @classmethod
    def parse(cls, text: str) -> RawInput:
        """Parse ``"button:0"`` / ``"axis:6"``."""
        kind_name, sep, index = text.strip().partition(":")
        if not sep:
            raise ValueError(f"Expected '<kind>:<index>', got {text!r}")
        try:
            kind = RawKind[kind_name.upper()]
        except KeyError:
            raise ValueError(f"Unknown raw input kind: {kind_name!r}") from None
        return cls(kind, int(index))


class InputMapping(Mapping[RawInput, SemanticID]):
    """Immutable lookup table for one device driver."""

    def __init__(self, entries: Mapping[RawInput, SemanticID] | None = None) -> None:
        self._entries: Mapping[RawInput, SemanticID] = MappingProxyType(
            {RawInput(RawKind(key[0]), int(key[1])): value for key, value in (entries or {}).items()}
        )

    def __getitem__(self, key: RawInput) -> SemanticID:
        return self._entries[key]

    def __iter__(self) -> Iterator[RawInput]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"InputMapping({len(self)} entries)"

    def lookup(self, kind: RawKind, index: int) -> SemanticID | None:
        """Return the semantic id for a raw input, or None if unmapped."""
        return self._entries.get(RawInput(kind, index))

    @classmethod
    def from_strings(cls, entries: Mapping[str, str]) -> InputMapping:
        """Build a mapping from ``{"button:0": "cross", ...}`` config entries."""
        return cls(
            {RawInput.parse(raw): parse_semantic_id(name) for raw, name in entries.items()}
        )


def _buttons(*ids: tuple[int, Button]) -> dict[RawInput, SemanticID]:
    return {RawInput(RawKind.BUTTON, index): button for index, button in ids}


def _axes(*ids: tuple[int, Axis]) -> dict[RawInput, SemanticID]:
    return {RawInput(RawKind.AXIS, index): axis for index, axis in ids}


# Kernel joystick layout of the xpad driver
XBOX_360_MAPPING = InputMapping(
    {
        **_buttons(
            (0, Button.CROSS),
            (1, Button.CIRCLE),
            (2, Button.SQUARE),
            (3, Button.TRIANGLE),
            (4, Button.L1),
            (5, Button.R1),
            (6, Button.SELECT),
            (7, Button.START),
            (8, Button.ANALOG),
            (9, Button.LEFT_STICK_CLICK),
            (10, Button.RIGHT_STICK_CLICK),
        ),
        **_axes(
            (0, Axis.LEFT_STICK_X),
            (1, Axis.LEFT_STICK_Y),
            (2, Axis.L2),
            (3, Axis.RIGHT_STICK_X),
            (4, Axis.RIGHT_STICK_Y),
            (5, Axis.R2),
            (6, Axis.DPAD_X),
            (7, Axis.DPAD_Y),
        ),
    }
)

# Indices produced by gesturepad.edges.EdgeSynthesizer
USB_HID_MAPPING = InputMapping(
    {
        **_buttons(
            (1, Button.START),
            (2, Button.SELECT),
            (3, Button.LEFT_STICK_CLICK),
            (4, Button.RIGHT_STICK_CLICK),
            (7, Button.CROSS),
            (8, Button.CIRCLE),
            (9, Button.SQUARE),
            (10, Button.TRIANGLE),
            (11, Button.L1),
            (12, Button.R1),
            (13, Button.ANALOG),
        ),
        **_axes(
            (5, Axis.DPAD_X),
            (6, Axis.DPAD_Y),
            (14, Axis.L2),
            (15, Axis.R2),
            (16, Axis.LEFT_STICK_X),
            (17, Axis.LEFT_STICK_Y),
            (18, Axis.RIGHT_STICK_X),
            (19, Axis.RIGHT_STICK_Y),
        ),
    }
)

DEFAULT_DRIVER_MAPPINGS: Mapping[str, InputMapping] = MappingProxyType(
    {
        XBOX_360_PAD: XBOX_360_MAPPING,
        USB_HID_DRIVER: USB_HID_MAPPING,
    }
)


def driver_mappings(
    overrides: Mapping[str, InputMapping] | None = None,
) -> Mapping[str, InputMapping]:
    """Return the default tables with ``overrides`` replacing same-named entries."""
    merged = dict(DEFAULT_DRIVER_MAPPINGS)
    merged.update(overrides or {})
    return MappingProxyType(merged)


def match_identity(identity: str, mappings: Mapping[str, InputMapping]) -> str | None:
    """Return the known identity matching ``identity`` (trimmed, case-sensitive)."""
    name = identity.strip()
    for known in mappings:
        if known == name:
            return known
    return None


def resolve(
    identity: str,
    mappings: Mapping[str, InputMapping] = DEFAULT_DRIVER_MAPPINGS,
) -> InputMapping:
    """Select the mapping table for a connected device.

    Raises DeviceNotRecognizedError if no table is registered for ``identity``.
    """
    known = match_identity(identity, mappings)
    if known is None:
        raise DeviceNotRecognizedError(identity.strip())
    logger.debug("Resolved driver mapping for %r (%d entries)", known, len(mappings[known]))
    return mappings[known]
