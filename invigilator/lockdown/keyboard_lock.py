from __future__ import annotations
"""
Keyboard Lock

Capture of system keys (Escape, ...) so they reach the exam instead of the
OS. Best effort: where it cannot be provided the no-op lock is used and
lockdown relies on event listeners alone.
"""

import sys
from typing import Iterable, Protocol, Set

from invigilator.utils.logger import get_logger

logger = get_logger(__name__)

# DOM key names -> pynput Key attributes
PYNPUT_KEY_NAMES = {
    "Escape": "esc",
    "Tab": "tab",
    "Alt": "alt",
    "Control": "ctrl",
    "Meta": "cmd",
    "Shift": "shift",
    "ArrowUp": "up",
    "ArrowDown": "down",
    "ArrowLeft": "left",
    "ArrowRight": "right",
    **{f"F{n}": f"f{n}" for n in range(1, 13)},
}

# Lazy import
keyboard = None


def _import_pynput_keyboard():
    """Lazy import pynput (needs a display server on Linux)."""
    global keyboard
    if keyboard is None:
        from pynput import keyboard as _keyboard
        keyboard = _keyboard
    return keyboard


class KeyboardLock(Protocol):
    def lock(self, keys: Iterable[str]) -> None:
        ...

    def unlock(self) -> None:
        ...


class NoopKeyboardLock:
    """Used when no keyboard lock is available."""

    locked = False

    def lock(self, keys: Iterable[str]) -> None:
        logger.debug("Keyboard lock unavailable, relying on listeners")

    def unlock(self) -> None:
        pass


class PynputKeyboardLock:
    """
    Suppresses the locked keys system-wide with a pynput listener.

    Selective suppression needs the platform event filters, available on
    Windows and macOS. Elsewhere `lock()` raises NotImplementedError.
    """

    def __init__(self):
        self.locked = False
        self._listener = None
        self._codes: Set[int] = set()

    def _key_codes(self, kb, keys: Iterable[str]) -> Set[int]:
        codes = set()
        for name in keys:
            attr = PYNPUT_KEY_NAMES.get(name)
            if attr is not None:
                vk = getattr(kb.Key, attr).value.vk
            elif len(name) == 1:
                vk = kb.KeyCode.from_char(name).vk
            else:
                vk = None

            if vk is None:
                logger.debug(f"No key code for {name!r}, skipped")
            else:
                codes.add(vk)
        return codes

    def lock(self, keys: Iterable[str]) -> None:
        if self.locked:
            return

        kb = _import_pynput_keyboard()
        self._codes = self._key_codes(kb, keys)

        if sys.platform == "win32":
            def win32_event_filter(msg, data):
                if data.vkCode in self._codes:
                    self._listener.suppress_event()
                return True

            listener = kb.Listener(win32_event_filter=win32_event_filter)

        elif sys.platform == "darwin":
            import Quartz

            def darwin_intercept(event_type, event):
                code = Quartz.CGEventGetIntegerValueField(event, Quartz.kCGKeyboardEventKeycode)
                return None if code in self._codes else event

            listener = kb.Listener(darwin_intercept=darwin_intercept)

        else:
            raise NotImplementedError(f"Selective keyboard lock is not supported on {sys.platform}")

        self._listener = listener
        listener.start()
        self.locked = True
        logger.info(f"🔒 Keyboard locked ({len(self._codes)} keys)")

    def unlock(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
        if self.locked:
            self.locked = False
            logger.info("🔓 Keyboard unlocked")


def create_keyboard_lock(enabled: bool = True) -> KeyboardLock:
    """
    Pick the best keyboard lock for this platform.

    Args:
        enabled: False forces the no-op lock
    """
    if not enabled or sys.platform not in ("win32", "darwin"):
        return NoopKeyboardLock()

    try:
        _import_pynput_keyboard()
    except ImportError as e:
        logger.warning(f"⚠️ pynput unavailable, keyboard lock disabled: {e}")
        return NoopKeyboardLock()

    return PynputKeyboardLock()
