"""
Lockdown installers.

Each installer registers its capture-phase listeners on the document and
returns a remover that undoes exactly what it registered.
"""

from typing import Callable, Iterable, List

from invigilator.lockdown.events import Event, EventTarget, KeyboardEvent, TouchEvent, WheelEvent
from invigilator.lockdown.keyboard_lock import KeyboardLock
from invigilator.utils.logger import get_logger

logger = get_logger(__name__)

Remover = Callable[[], None]

FUNCTION_KEYS = frozenset(f"F{n}" for n in range(1, 13))
MODIFIER_KEYS = frozenset({"Alt", "Control", "Meta", "Shift"})
ARROW_KEYS = frozenset({"ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight"})
BLOCKED_KEYS = frozenset({"Escape"}) | FUNCTION_KEYS | MODIFIER_KEYS | ARROW_KEYS

ZOOM_KEYS = frozenset({"+", "=", "-", "0"})
INTERACTION_EVENTS = ("contextmenu", "dragstart", "selectstart")
CLIPBOARD_EVENTS = ("copy", "cut", "paste")
SAFARI_GESTURE_EVENTS = ("gesturestart", "gesturechange", "gestureend")


def listen(target: EventTarget, type: str, handler, capture: bool = True, **options) -> Remover:
    """Add a listener and return its remover."""
    target.add_event_listener(type, handler, capture=capture, **options)

    def remove():
        target.remove_event_listener(type, handler, capture=capture)

    return remove


def combine(removers: List[Remover]) -> Remover:
    """One remover running several, last installed first."""
    def remove():
        for remover in reversed(removers):
            remover()

    return remove


def _block(event: Event):
    event.prevent_default()
    event.stop_propagation()


def is_blocked_key(event: KeyboardEvent) -> bool:
    """Escape, F-keys, modifiers, arrows, and anything pressed with ctrl/alt/meta."""
    return event.key in BLOCKED_KEYS or event.ctrl_key or event.alt_key or event.meta_key


def install_keyboard_block(document: EventTarget) -> Remover:
    def on_key_down(event: KeyboardEvent):
        if is_blocked_key(event):
            _block(event)

    return listen(document, "keydown", on_key_down)


def install_keyboard_lock(lock: KeyboardLock, keys: Iterable[str]) -> Remover:
    """
    Request the native keyboard lock. Failures are ignored and the remover
    only unlocks if the lock was actually taken.
    """
    held = False
    try:
        lock.lock(list(keys))
        held = True
    except Exception as e:
        logger.debug(f"Keyboard lock not available: {e}")

    def remove():
        if not held:
            return
        try:
            lock.unlock()
        except Exception as e:
            logger.debug(f"Keyboard unlock failed: {e}")

    return remove


def install_interaction_block(document: EventTarget) -> Remover:
    """Context menu, drag and text selection."""
    return combine([listen(document, type, _block) for type in INTERACTION_EVENTS])


def install_clipboard_block(document: EventTarget) -> Remover:
    return combine([listen(document, type, _block) for type in CLIPBOARD_EVENTS])


def install_gesture_block(document: EventTarget) -> Remover:
    """Multi-touch, pinch-zoom (ctrl/cmd wheel and zoom keys), Safari gestures."""

    def on_touch(event: TouchEvent):
        if event.touches > 1:
            event.prevent_default()

    def on_wheel(event: WheelEvent):
        if event.ctrl_key or event.meta_key:
            event.prevent_default()

    def on_zoom_key(event: KeyboardEvent):
        if (event.ctrl_key or event.meta_key) and event.key in ZOOM_KEYS:
            event.prevent_default()

    removers = [
        listen(document, "touchstart", on_touch, passive=False),
        listen(document, "touchmove", on_touch, passive=False),
        listen(document, "wheel", on_wheel, passive=False),
        listen(document, "keydown", on_zoom_key),
    ]
    removers.extend(listen(document, type, _block) for type in SAFARI_GESTURE_EVENTS)
    return combine(removers)
