from __future__ import annotations
"""
Event Target

A small DOM-style event model. The host UI forwards raw input (keys,
wheel, touch, clipboard) to a `Document` and honours the result of
`dispatch_event()`; lockdown handlers cancel what must not reach the exam.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from invigilator.utils.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[["Event"], None]


class Event:
    """A dispatched event. `prevent_default()` cancels the default action."""

    def __init__(self, type: str, cancelable: bool = True):
        self.type = type
        self.cancelable = cancelable
        self.timestamp = datetime.utcnow()

        self.default_prevented = False
        self.propagation_stopped = False
        self._passive = False

    def prevent_default(self):
        # Ignored inside passive listeners, like the DOM
        if self.cancelable and not self._passive:
            self.default_prevented = True

    def stop_propagation(self):
        self.propagation_stopped = True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.type!r})"


class KeyboardEvent(Event):
    def __init__(
        self,
        key: str,
        type: str = "keydown",
        ctrl_key: bool = False,
        alt_key: bool = False,
        meta_key: bool = False,
        shift_key: bool = False,
    ):
        super().__init__(type)
        self.key = key
        self.ctrl_key = ctrl_key
        self.alt_key = alt_key
        self.meta_key = meta_key
        self.shift_key = shift_key

    def __repr__(self) -> str:
        mods = [m for m, on in (
            ("ctrl", self.ctrl_key), ("alt", self.alt_key),
            ("meta", self.meta_key), ("shift", self.shift_key),
        ) if on]
        return f"KeyboardEvent({'+'.join(mods + [self.key])!r})"


class WheelEvent(Event):
    def __init__(self, delta_y: float = 0.0, ctrl_key: bool = False, meta_key: bool = False):
        super().__init__("wheel")
        self.delta_y = delta_y
        self.ctrl_key = ctrl_key
        self.meta_key = meta_key


class TouchEvent(Event):
    def __init__(self, type: str = "touchstart", touches: int = 1):
        super().__init__(type)
        self.touches = touches


@dataclass(frozen=True)
class Listener:
    type: str
    handler: Handler
    capture: bool = False
    passive: Optional[bool] = None


class EventTarget:
    """
    Listener registry with add/remove/dispatch.

    Registrations are keyed on (type, handler, capture): adding the same
    triple twice is a no-op and removal must pass the same `capture` flag.
    Capture listeners run before bubble listeners.
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def add_event_listener(
        self,
        type: str,
        handler: Handler,
        *,
        capture: bool = False,
        passive: Optional[bool] = None,
    ):
        if self._find(type, handler, capture) is not None:
            return
        self._listeners.append(Listener(type, handler, capture, passive))

    def remove_event_listener(self, type: str, handler: Handler, capture: bool = False):
        entry = self._find(type, handler, capture)
        if entry is not None:
            self._listeners.remove(entry)

    def dispatch_event(self, event: Event) -> bool:
        """
        Deliver `event` to matching listeners.

        Returns:
            False if a listener called `prevent_default()`
        """
        matching = [entry for entry in self._listeners if entry.type == event.type]
        ordered = [e for e in matching if e.capture] + [e for e in matching if not e.capture]

        for entry in ordered:
            if entry not in self._listeners:
                continue
            event._passive = bool(entry.passive)
            try:
                entry.handler(event)
            except Exception as e:
                logger.error(f"❌ Listener for '{event.type}' failed: {e}")
            finally:
                event._passive = False
            if event.propagation_stopped:
                break

        return not event.default_prevented

    def listener_count(self, type: Optional[str] = None) -> int:
        if type is None:
            return len(self._listeners)
        return sum(1 for entry in self._listeners if entry.type == type)

    def listeners(self) -> List[Listener]:
        """Snapshot of current registrations."""
        return list(self._listeners)

    def _find(self, type: str, handler: Handler, capture: bool) -> Optional[Listener]:
        for entry in self._listeners:
            if entry.type == type and entry.handler == handler and entry.capture == capture:
                return entry
        return None


class Document(EventTarget):
    """
    The exam window as seen by lockdown.

    The host reports fullscreen and visibility changes through
    `set_fullscreen()` / `set_hidden()`, which dispatch the matching event.
    """

    def __init__(self, fullscreen: bool = False, hidden: bool = False):
        super().__init__()
        self.fullscreen = fullscreen
        self.hidden = hidden

    def set_fullscreen(self, fullscreen: bool):
        if fullscreen == self.fullscreen:
            return
        self.fullscreen = fullscreen
        self.dispatch_event(Event("fullscreenchange", cancelable=False))

    def set_hidden(self, hidden: bool):
        if hidden == self.hidden:
            return
        self.hidden = hidden
        self.dispatch_event(Event("visibilitychange", cancelable=False))
