"""Per-button gesture state machine."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass

from gesturepad.buttons import SemanticID
from gesturepad.events import Gesture, Position

logger = logging.getLogger(__name__)

DEFAULT_CLICK_DURATION = 0.300
DEFAULT_HOLD_DURATION = 0.800

ButtonHandler = Callable[[Gesture], Awaitable[None] | None]


@dataclass(frozen=True)
class HoldFired:
    """Posted by an expired hold timer onto the processing queue."""

    button: SemanticID
    press: int


class ButtonGestureState:
    """Tracks one subscribed button and decides which gestures it produced.

    Transitions run on the engine's processing task. The hold timer does not
    call the handler itself: it posts a :class:`HoldFired` message through
    ``post`` and the engine asks :meth:`accept_hold` whether the press it was
    armed for is still held. States of one engine share ``press_ids`` so a late
    hold never matches a newer press, even after re-subscription.
    """

    def __init__(
        self,
        button: SemanticID,
        handler: ButtonHandler,
        events: Iterable[Gesture] | None = None,
        *,
        click_duration: float = DEFAULT_CLICK_DURATION,
        hold_duration: float = DEFAULT_HOLD_DURATION,
        post: Callable[[HoldFired], None],
        press_ids: Iterator[int] | None = None,
    ) -> None:
        self.button = button
        self.handler = handler
        self.events: frozenset[Gesture] = (
            frozenset(Gesture) if events is None else frozenset(events)
        )
        self.click_duration = click_duration
        self.hold_duration = hold_duration
        self.last_position = Position.UP
        self.down_at = 0.0
        self._post = post
        self._press_ids = press_ids if press_ids is not None else itertools.count(1)
        self._press = 0
        self._hold_timer: asyncio.TimerHandle | None = None

    @property
    def hold_pending(self) -> bool:
        return self._hold_timer is not None

    def transition(self, position: Position, now: float) -> list[Gesture]:
        """Apply a new position; return the gestures to deliver, in order."""
        if position == self.last_position:
            return []  # swallow duplicates
        self.last_position = position

        gestures: list[Gesture] = []
        if position == Position.DOWN:
            self._press = next(self._press_ids)
            self.down_at = now
            if Gesture.DOWN in self.events:
                gestures.append(Gesture.DOWN)
            if Gesture.HOLD in self.events:
                self._arm_hold()
            return gestures

        self.cancel_hold()
        if Gesture.UP in self.events:
            gestures.append(Gesture.UP)
        if Gesture.CLICK in self.events:
            held = now - self.down_at
            if held < self.click_duration:
                gestures.append(Gesture.CLICK)
            else:
                logger.debug(
                    "Invalid click on %s, elapsed: %.3fs, click duration: %.3fs",
                    self.button,
                    held,
                    self.click_duration,
                )
        return gestures

    def accept_hold(self, message: HoldFired) -> bool:
        """Return True if ``message`` belongs to the press still being held."""
        if message.press != self._press or self.last_position != Position.DOWN:
            return False
        if self._hold_timer is None:
            return False
        self._hold_timer = None
        return True

    def cancel_hold(self) -> None:
        """Cancel the pending hold timer, if any."""
        if self._hold_timer is not None:
            self._hold_timer.cancel()
            self._hold_timer = None

    def _arm_hold(self) -> None:
        self.cancel_hold()
        message = HoldFired(self.button, self._press)
        loop = asyncio.get_running_loop()
        self._hold_timer = loop.call_later(self.hold_duration, self._post, message)
