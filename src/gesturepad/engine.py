"""Gamepad engine: semantic resolution, directions and gestures."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import logging
import time
from collections.abc import Awaitable, Callable, Iterable

from gesturepad.axes import AxisCache
from gesturepad.bus import Dispatcher
from gesturepad.buttons import (
    AXIS_GROUP,
    TRIGGERS,
    Axis,
    Button,
    DirectionGroup,
    SemanticID,
)
from gesturepad.config import GamepadConfig
from gesturepad.errors import ConnectError
from gesturepad.events import MAX_VALUE, AxisEvent, ButtonEvent, Gesture, Position, RawKind
from gesturepad.gestures import ButtonGestureState, ButtonHandler, HoldFired
from gesturepad.mapping import InputMapping, resolve
from gesturepad.transport import RawTransport, create_transport

logger = logging.getLogger(__name__)

DirectionHandler = Callable[[float, float], Awaitable[None] | None]


class Gamepad:
    """Normalizes one device's raw events into directions and gestures.

    Usage::

        gamepad = await Gamepad.connect(config)
        gamepad.on_button(Button.CROSS, on_cross, [Gesture.CLICK])
        gamepad.on_left_stick(on_move)
        await gamepad.wait_closed()

    All mapping, direction and gesture work happens on a single processing
    task. Handlers run on that task too: a slow handler delays every other
    button, so handlers must return promptly.
    """

    def __init__(
        self,
        mapping: InputMapping,
        config: GamepadConfig | None = None,
        *,
        dispatcher: Dispatcher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or GamepadConfig()
        self._mapping = mapping
        self._dispatcher = dispatcher or Dispatcher(
            timeout=self._config.dispatch_timeout,
            capacity=self._config.stream_capacity,
        )
        self._clock = clock
        self._cache = AxisCache()
        self._buttons: dict[SemanticID, ButtonGestureState] = {}
        self._directions: dict[DirectionGroup, DirectionHandler] = {}
        self._control: asyncio.Queue[HoldFired] = asyncio.Queue()
        self._press_ids = itertools.count(1)
        self._transport: RawTransport | None = None
        self._process_task: asyncio.Task[None] | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @classmethod
    async def connect(
        cls,
        config: GamepadConfig | None = None,
        transport: RawTransport | None = None,
    ) -> Gamepad:
        """Open a device, select its driver mapping and start processing.

        Raises ConnectError (DeviceNotRecognizedError, DeviceOpenError) on failure.
        """
        config = config or GamepadConfig()
        transport = transport or create_transport(config)
        await transport.start()
        try:
            mapping = resolve(transport.identity, config.mappings())
        except ConnectError:
            await transport.stop()
            raise
        logger.info("Connected gamepad: %s", transport.identity)

        gamepad = cls(mapping, config)
        gamepad.start(transport)
        return gamepad

    @property
    def config(self) -> GamepadConfig:
        return self._config

    @property
    def mapping(self) -> InputMapping:
        return self._mapping

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def axis_cache(self) -> AxisCache:
        return self._cache

    # --- Subscriptions ---

    def on_button(
        self,
        button: SemanticID,
        handler: ButtonHandler,
        events: Iterable[Gesture] | None = None,
    ) -> None:
        """Subscribe to a button's gestures.

        ``events=None`` delivers all four gestures; an explicit collection,
        even an empty one, restricts delivery to exactly those.
        """
        if isinstance(button, Axis) and button not in TRIGGERS:
            raise ValueError(f"{button} is a direction axis, not a button")
        previous = self._buttons.get(button)
        if previous is not None:
            previous.cancel_hold()
        self._buttons[button] = ButtonGestureState(
            button,
            handler,
            events,
            click_duration=self._config.click_duration,
            hold_duration=self._config.hold_duration,
            post=self._control.put_nowait,
            press_ids=self._press_ids,
        )

    def on_direction(self, group: DirectionGroup, handler: DirectionHandler) -> None:
        self._directions[group] = handler

    def on_dpad(self, handler: DirectionHandler) -> None:
        self.on_direction(DirectionGroup.DPAD, handler)

    def on_left_stick(self, handler: DirectionHandler) -> None:
        self.on_direction(DirectionGroup.LEFT_STICK, handler)

    def on_right_stick(self, handler: DirectionHandler) -> None:
        self.on_direction(DirectionGroup.RIGHT_STICK, handler)

    # --- Lifecycle ---

    def start(self, transport: RawTransport | None = None) -> None:
        """Start the dispatch and processing tasks (and the ingestion pump)."""
        if self._tasks:
            raise RuntimeError("Gamepad already started")
        self._tasks.append(asyncio.create_task(self._dispatcher.run(), name="gamepad-dispatch"))
        self._process_task = asyncio.create_task(self._process_loop(), name="gamepad-process")
        self._tasks.append(self._process_task)
        if transport is not None:
            self._transport = transport
            self._tasks.append(asyncio.create_task(self._pump(transport), name="gamepad-ingest"))

    async def wait_closed(self) -> None:
        """Wait until the device disconnects and all queued events are processed.

        Also returns when :meth:`close` stops processing from another task.
        """
        if self._process_task is not None:
            await asyncio.wait({self._process_task})

    async def close(self) -> None:
        """Stop all tasks, release the transport and cancel pending holds."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._process_task = None
        if self._transport is not None:
            await self._transport.stop()
            self._transport = None
        self._cancel_holds()
        logger.info("Gamepad closed.")

    async def __aenter__(self) -> Gamepad:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # --- Internal ---

    async def _pump(self, transport: RawTransport) -> None:
        try:
            async for event in transport.events():
                if self._config.debug:
                    logger.info(
                        "%s event, index: %d, value: %d, when: %.3fs",
                        event.kind.name.capitalize(),
                        event.index,
                        event.value,
                        event.elapsed,
                    )
                self._dispatcher.publish(event)
        finally:
            logger.debug("Transport ended.")
            self._dispatcher.close_ingress()

    async def _process_loop(self) -> None:
        sources: dict[str, Callable[[], Awaitable[object]]] = {
            "button": self._dispatcher.buttons.get,
            "axis": self._dispatcher.axes.get,
            "hold": self._control.get,
        }
        order = list(sources)
        pending: dict[asyncio.Task[object], str] = {
            asyncio.ensure_future(get()): name for name, get in sources.items()
        }
        try:
            while {"button", "axis"} & set(pending.values()):
                done, _ = await asyncio.wait(set(pending), return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=lambda t: order.index(pending[t])):
                    name = pending.pop(task)
                    item = task.result()
                    if item is None:
                        logger.debug("%s stream closed.", name.capitalize())
                        continue
                    await self._handle(item)
                    pending[asyncio.ensure_future(sources[name]())] = name
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._cancel_holds()

    async def _handle(self, item: object) -> None:
        if isinstance(item, ButtonEvent):
            await self._on_button_event(item)
        elif isinstance(item, AxisEvent):
            await self._on_axis_event(item)
        elif isinstance(item, HoldFired):
            await self._on_hold(item)

    async def _on_button_event(self, event: ButtonEvent) -> None:
        ident = self._mapping.lookup(RawKind.BUTTON, event.index)
        if ident is None:
            logger.debug("Unmapped button, index: %d, value: %d", event.index, event.value)
            return
        if isinstance(ident, Axis) and ident not in TRIGGERS:
            # A digital input bound to an axis reports full deflection
            await self._apply_axis(ident, MAX_VALUE if event.value > 0 else 0)
            return
        await self._apply_position(ident, Position.from_value(event.value))

    async def _on_axis_event(self, event: AxisEvent) -> None:
        ident = self._mapping.lookup(RawKind.AXIS, event.index)
        if ident is None:
            logger.debug("Unmapped axis, index: %d, value: %d", event.index, event.value)
            return
        if isinstance(ident, Button):
            await self._apply_position(ident, Position.from_value(event.value))
            return
        await self._apply_axis(ident, event.value)

    async def _apply_axis(self, axis: Axis, value: int) -> None:
        self._cache.update(axis, value)
        if axis in TRIGGERS:
            await self._apply_position(axis, Position.from_value(value))
            return

        group = AXIS_GROUP[axis]
        handler = self._directions.get(group)
        if handler is None:
            return
        x, y = self._cache.direction(group, self._config.inverted_y)
        await self._call(handler, x, y)

    async def _apply_position(self, ident: SemanticID, position: Position) -> None:
        state = self._buttons.get(ident)
        if state is None:
            logger.debug("No handler for %s, position: %s", ident, position)
            return
        for gesture in state.transition(position, self._clock()):
            await self._call(state.handler, gesture)

    async def _on_hold(self, message: HoldFired) -> None:
        state = self._buttons.get(message.button)
        if state is None or not state.accept_hold(message):
            logger.debug("Stale hold on %s ignored.", message.button)
            return
        await self._call(state.handler, Gesture.HOLD)

    async def _call(self, handler: Callable[..., object], *args: object) -> None:
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error in handler %r", handler)

    def _cancel_holds(self) -> None:
        for state in self._buttons.values():
            state.cancel_hold()
