"""
Violation Log

Externally-owned sink for violation events with a "threshold reached"
callback, used to warn or auto-submit an exam.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, List, Optional

from invigilator.engine.results import ViolationEvent
from invigilator.utils.logger import get_logger
from invigilator.utils.violations import ViolationType

logger = get_logger(__name__)


class ViolationLog:
    """
    Append-only violation history.

    `on_threshold_reached` fires exactly once, when the count first reaches
    `max_violations`. `clear()` re-arms it.

    Example:
        >>> log = ViolationLog(max_violations=3, on_threshold_reached=submit)
        >>> classifier = ViolationClassifier(sink=log.append)
    """

    def __init__(
        self,
        max_violations: Optional[int] = None,
        on_threshold_reached: Optional[Callable[[int], None]] = None,
    ):
        self.max_violations = max_violations
        self.on_threshold_reached = on_threshold_reached

        self._events: List[ViolationEvent] = []
        self._threshold_fired = False
        self._listeners: list = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    @property
    def events(self) -> List[ViolationEvent]:
        return list(self._events)

    @property
    def threshold_reached(self) -> bool:
        return self.max_violations is not None and len(self._events) >= self.max_violations

    def subscribe(self, callback: Callable[[ViolationEvent], None]):
        """Call `callback` for every appended violation."""
        self._listeners.append(callback)

    def append(self, event: ViolationEvent):
        """Record a violation and fire the threshold callback if due."""
        self._events.append(event)
        logger.info(f"⚠️ Violation #{len(self._events)}: {event.type.value} ({event.severity.value}) - {event.message}")

        for callback in self._listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"❌ Violation listener error: {e}")

        if self.threshold_reached and not self._threshold_fired:
            self._threshold_fired = True
            logger.warning(f"⛔ Violation threshold reached ({self.max_violations})")
            if self.on_threshold_reached:
                self.on_threshold_reached(len(self._events))

    def clear(self):
        self._events.clear()
        self._threshold_fired = False

    def counts_by_type(self) -> dict:
        counts = Counter(e.type for e in self._events)
        return {t.value: counts.get(t, 0) for t in ViolationType}

    def to_metadata(self) -> dict:
        """Summary attached to an exam submission."""
        return {
            "face_violations": [
                {"type": e.type.value, "timestamp": e.timestamp.isoformat()}
                for e in self._events
            ],
            "violations_by_type": self.counts_by_type(),
            "total_violation_count": len(self._events),
            "violation_threshold_reached": self.threshold_reached,
        }
