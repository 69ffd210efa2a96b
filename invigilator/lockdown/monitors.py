"""
Fullscreen and visibility monitors.

They do not block anything; they record when the candidate leaves
fullscreen or switches away from the exam window.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from invigilator.lockdown.events import Document, Event
from invigilator.lockdown.installers import Remover, listen
from invigilator.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FullscreenViolation:
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {"type": "fullscreen_exit", "timestamp": self.timestamp.isoformat()}


class FullscreenMonitor:
    """Records every transition out of fullscreen."""

    def __init__(self, on_exit: Optional[Callable[[FullscreenViolation], None]] = None):
        self.on_exit = on_exit
        self.exits: List[FullscreenViolation] = []
        self.is_fullscreen = False

    def install(self, document: Document) -> Remover:
        self.is_fullscreen = document.fullscreen

        def on_change(event: Event):
            was_fullscreen = self.is_fullscreen
            self.is_fullscreen = document.fullscreen
            if was_fullscreen and not self.is_fullscreen:
                violation = FullscreenViolation()
                self.exits.append(violation)
                logger.warning(f"⚠️ Fullscreen exited ({len(self.exits)} total)")
                if self.on_exit:
                    self.on_exit(violation)

        return listen(document, "fullscreenchange", on_change, capture=False)


class VisibilityMonitor:
    """Counts tab switches and the time spent away."""

    def __init__(self, on_hidden: Optional[Callable[[int], None]] = None):
        self.on_hidden = on_hidden
        self.tab_switches = 0
        self.hidden_seconds = 0.0
        self._hidden_since: Optional[datetime] = None

    def install(self, document: Document) -> Remover:
        def on_change(event: Event):
            if document.hidden:
                self.tab_switches += 1
                self._hidden_since = datetime.utcnow()
                logger.warning(f"⚠️ Exam window hidden (switch #{self.tab_switches})")
                if self.on_hidden:
                    self.on_hidden(self.tab_switches)
            elif self._hidden_since is not None:
                self.hidden_seconds += (datetime.utcnow() - self._hidden_since).total_seconds()
                self._hidden_since = None

        return listen(document, "visibilitychange", on_change, capture=False)
