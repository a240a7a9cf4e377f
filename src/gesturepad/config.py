"""gesturepad configuration - Pydantic v2 based."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from gesturepad.mapping import InputMapping, driver_mappings


class GamepadConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    inverted_y: bool = False
    """Flip the sign of every direction's y component."""
    click_duration_ms: Annotated[int, Field(gt=0, le=10_000)] = 300
    """A press released sooner than this is a click."""
    hold_duration_ms: Annotated[int, Field(gt=0, le=60_000)] = 800
    """A press held this long fires a hold."""
    debug: bool = False
    """Log every raw event, to discover the layout of an unknown device."""
    dispatch_timeout_ms: Annotated[int, Field(gt=0, le=1000)] = 20
    stream_capacity: Annotated[int, Field(ge=1, le=1024)] = 1
    transport: Literal["evdev", "usb"] = "evdev"
    device_path: str = ""
    """Path to the evdev device. Empty string = scan for a known device."""
    driver_mappings: dict[str, dict[str, str]] = Field(default_factory=dict)
    """Extra driver tables: {identity: {'button:0': 'cross', 'axis:6': 'dpad_x', ...}}"""

    @field_validator("driver_mappings")
    @classmethod
    def driver_mappings_parse(cls, v: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
        for identity, entries in v.items():
            if not identity.strip():
                raise ValueError("Driver mapping identity cannot be empty.")
            try:
                InputMapping.from_strings(entries)
            except ValueError as e:
                raise ValueError(f"Driver mapping {identity!r}: {e}") from e
        return v

    @model_validator(mode="after")
    def click_shorter_than_hold(self) -> GamepadConfig:
        if self.click_duration_ms >= self.hold_duration_ms:
            raise ValueError(
                f"click_duration_ms ({self.click_duration_ms}) must be shorter than "
                f"hold_duration_ms ({self.hold_duration_ms})."
            )
        return self

    @property
    def click_duration(self) -> float:
        return self.click_duration_ms / 1000

    @property
    def hold_duration(self) -> float:
        return self.hold_duration_ms / 1000

    @property
    def dispatch_timeout(self) -> float:
        return self.dispatch_timeout_ms / 1000

    def mappings(self) -> Mapping[str, InputMapping]:
        """Built-in driver tables merged with the configured ones."""
        return driver_mappings(
            {
                identity.strip(): InputMapping.from_strings(entries)
                for identity, entries in self.driver_mappings.items()
            }
        )

    @classmethod
    def load(cls, path: Path | None = None) -> GamepadConfig:
        """Load config from TOML file. Uses defaults if file not found."""
        from gesturepad.paths import default_config_path

        config_path = path or default_config_path()
        if not config_path.exists():
            return cls()

        with config_path.open("rb") as f:
            data = tomllib.load(f)

        return cls.model_validate(data)

    @classmethod
    def load_with_override(
        cls,
        base: Path | None = None,
        override: Path | None = None,
    ) -> GamepadConfig:
        """Load base config, then merge override TOML on top."""
        from gesturepad.paths import default_config_path

        base_path = base or default_config_path()
        base_data: dict[str, object] = {}
        if base_path.exists():
            with base_path.open("rb") as f:
                base_data = tomllib.load(f)

        if override and override.exists():
            with override.open("rb") as f:
                override_data = tomllib.load(f)
            base_data = _deep_merge(base_data, override_data)

        return cls.model_validate(base_data)


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Recursively merge override into base."""
    result: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = _deep_merge(base_value, value)
        else:
            result[key] = value
    return result
