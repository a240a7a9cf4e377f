"""Command line entry point for gesturepad, built on typer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

if TYPE_CHECKING:
    from gesturepad.config import GamepadConfig
    from gesturepad.events import Gesture

app = typer.Typer(
    name="gesturepad",
    help="Turn raw gamepad reports into named buttons, directions and gestures.",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration commands.")
app.add_typer(config_app, name="config")

logger = logging.getLogger("gesturepad")


# --- Run ---


@app.command()
def run(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config file."),
    ] = None,
    override: Annotated[
        Path | None,
        typer.Option("--override", "-o", help="Override TOML to merge on top of config."),
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging.")] = False,
) -> None:
    """Connect to the gamepad and log every gesture and direction."""
    _setup_logging(debug)
    from gesturepad.config import GamepadConfig
    from gesturepad.errors import ConnectError

    cfg = GamepadConfig.load_with_override(base=config, override=override)
    if debug and not cfg.debug:
        cfg = cfg.model_copy(update={"debug": True})

    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(_run(cfg))
    except ConnectError as e:
        typer.echo(f"✗ {e}", err=True)
        raise typer.Exit(code=1) from e


async def _run(cfg: GamepadConfig) -> None:
    from gesturepad.buttons import TRIGGERS, Button, DirectionGroup
    from gesturepad.engine import Gamepad

    gamepad = await Gamepad.connect(cfg)

    def log_gesture(name: str) -> Callable[[Gesture], None]:
        def _handler(gesture: Gesture) -> None:
            logger.info("%s %s", name, gesture)

        return _handler

    def log_direction(name: str) -> Callable[[float, float], None]:
        def _handler(x: float, y: float) -> None:
            logger.info("%s, x: %.3f, y: %.3f", name, x, y)

        return _handler

    for button in [*Button, *sorted(TRIGGERS)]:
        gamepad.on_button(button, log_gesture(str(button)))
    for group in DirectionGroup:
        gamepad.on_direction(group, log_direction(str(group)))

    async with gamepad:
        await gamepad.wait_closed()


# --- Devices ---


@app.command()
def devices(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config file."),
    ] = None,
) -> None:
    """List input devices and mark the ones with a known driver mapping."""
    import evdev

    from gesturepad.config import GamepadConfig
    from gesturepad.mapping import match_identity

    mappings = GamepadConfig.load(config).mappings()
    paths = evdev.list_devices()
    if not paths:
        typer.echo("No input devices found. Is the controller connected?")
        raise typer.Exit(code=1)

    for path in paths:
        try:
            device = evdev.InputDevice(path)
        except OSError as e:
            typer.echo(f"  ? {path}: {e}")
            continue
        name = device.name
        device.close()
        icon = "✓" if match_identity(name, mappings) is not None else " "
        typer.echo(f"  {icon} {path}: {name}")


# --- Config subcommands ---


@config_app.command("show")
def config_show(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config file."),
    ] = None,
) -> None:
    """Show effective configuration as TOML."""
    import tomli_w

    from gesturepad.config import GamepadConfig

    cfg = GamepadConfig.load(config)
    typer.echo(tomli_w.dumps(cfg.model_dump()))


@config_app.command("validate")
def config_validate(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config file."),
    ] = None,
) -> None:
    """Validate configuration file and report errors."""
    from pydantic import ValidationError

    from gesturepad.config import GamepadConfig
    from gesturepad.paths import default_config_path

    path = config or default_config_path()
    if not path.exists():
        typer.echo(f"Config file not found: {path}")
        typer.echo("Using defaults, nothing to validate.")
        return

    try:
        cfg = GamepadConfig.load(path)
        typer.echo(f"✓ Config valid: {path}")
        typer.echo(f"  transport       = {cfg.transport}")
        typer.echo(f"  driver_mappings = {len(cfg.driver_mappings)} entries")
    except ValidationError as e:
        typer.echo(f"✗ Config validation failed: {path}", err=True)
        for error in e.errors():
            loc = " -> ".join(str(item) for item in error["loc"])
            typer.echo(f"  [{loc}] {error['msg']}", err=True)
        raise typer.Exit(code=1) from e


# --- Helpers ---


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not debug:
        logging.getLogger("asyncio").setLevel(logging.WARNING)


def main() -> None:
    app()
