from __future__ import annotations
"""
Invigilator Lockdown Module

Suppresses escape hatches (shortcuts, gestures, context menu, clipboard)
for the duration of a proctored session.
"""

from invigilator.lockdown.events import (
    Document,
    Event,
    EventTarget,
    KeyboardEvent,
    Listener,
    TouchEvent,
    WheelEvent,
)
from invigilator.lockdown.keyboard_lock import (
    KeyboardLock,
    NoopKeyboardLock,
    PynputKeyboardLock,
    create_keyboard_lock,
)
from invigilator.lockdown.monitors import FullscreenMonitor, FullscreenViolation, VisibilityMonitor
from invigilator.lockdown.controller import LockdownController

__all__ = [
    # Events
    "Document",
    "Event",
    "EventTarget",
    "KeyboardEvent",
    "Listener",
    "TouchEvent",
    "WheelEvent",
    # Keyboard lock
    "KeyboardLock",
    "NoopKeyboardLock",
    "PynputKeyboardLock",
    "create_keyboard_lock",
    # Monitors
    "FullscreenMonitor",
    "FullscreenViolation",
    "VisibilityMonitor",
    # Controller
    "LockdownController",
]
