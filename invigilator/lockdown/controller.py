from __future__ import annotations
"""
Lockdown Controller

Composes the lockdown installers into one activate/deactivate pair.
"""

from typing import Callable, List, Optional

from invigilator.cfg import LockdownConfig
from invigilator.lockdown.events import Document
from invigilator.lockdown.installers import (
    Remover,
    install_clipboard_block,
    install_gesture_block,
    install_interaction_block,
    install_keyboard_block,
    install_keyboard_lock,
)
from invigilator.lockdown.keyboard_lock import KeyboardLock, NoopKeyboardLock
from invigilator.lockdown.monitors import FullscreenMonitor, VisibilityMonitor
from invigilator.utils.logger import get_logger

logger = get_logger(__name__)


class LockdownController:
    """
    Installs every lockdown handler on `activate()` and removes them all on
    `deactivate()`.

    Both calls are idempotent, so one activation is always matched by
    exactly one removal pass. If an installer fails part way, the handlers
    already installed are removed before the error is re-raised.

    Example:
        >>> controller = LockdownController(document, create_keyboard_lock())
        >>> with controller:
        ...     run_exam()
    """

    def __init__(
        self,
        document: Document,
        keyboard_lock: Optional[KeyboardLock] = None,
        config: Optional[LockdownConfig] = None,
    ):
        """
        Initialize lockdown controller.

        Args:
            document: Event target the host UI dispatches input to
            keyboard_lock: Native keyboard lock (no-op if None)
            config: Which handler groups to install
        """
        self.document = document
        self.keyboard_lock = keyboard_lock if keyboard_lock is not None else NoopKeyboardLock()
        self.config = config or LockdownConfig()

        self.fullscreen_monitor = FullscreenMonitor()
        self.visibility_monitor = VisibilityMonitor()

        self.activations = 0
        self.deactivations = 0
        self._removers: Optional[List[Remover]] = None

    @property
    def active(self) -> bool:
        return self._removers is not None

    def installers(self) -> List[Callable[[], Remover]]:
        """The fixed installer list for the current config."""
        document = self.document
        installers = [lambda: install_keyboard_block(document)]

        if self.config.lock_keyboard:
            installers.append(lambda: install_keyboard_lock(self.keyboard_lock, self.config.locked_keys))
        installers.append(lambda: install_interaction_block(document))
        if self.config.block_clipboard:
            installers.append(lambda: install_clipboard_block(document))
        if self.config.block_gestures:
            installers.append(lambda: install_gesture_block(document))
        if self.config.watch_fullscreen:
            installers.append(lambda: self.fullscreen_monitor.install(document))
        if self.config.watch_visibility:
            installers.append(lambda: self.visibility_monitor.install(document))

        return installers

    def activate(self) -> bool:
        """
        Install all handlers.

        Returns:
            False if already active
        """
        if self.active:
            return False

        removers: List[Remover] = []
        try:
            for install in self.installers():
                removers.append(install())
        except Exception:
            logger.error("❌ Lockdown installation failed, rolling back")
            self._run_removers(removers)
            raise

        self._removers = removers
        self.activations += 1
        logger.info(f"🔒 Lockdown active ({self.document.listener_count()} listeners)")
        return True

    def deactivate(self) -> bool:
        """
        Remove every handler installed by `activate()`.

        Returns:
            False if not active
        """
        if not self.active:
            return False

        removers, self._removers = self._removers, None
        self._run_removers(removers)
        self.deactivations += 1
        logger.info("🔓 Lockdown released")
        return True

    def _run_removers(self, removers: List[Remover]):
        for remove in reversed(removers):
            try:
                remove()
            except Exception as e:
                logger.error(f"❌ Lockdown remover failed: {e}")

    def stats(self) -> dict:
        return {
            "active": self.active,
            "fullscreen_exits": len(self.fullscreen_monitor.exits),
            "tab_switches": self.visibility_monitor.tab_switches,
            "hidden_seconds": round(self.visibility_monitor.hidden_seconds, 1),
        }

    def __enter__(self) -> "LockdownController":
        self.activate()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.deactivate()
