"""
Violation classification.

`classify` maps one instantaneous detection to a status and an optional
violation. `ViolationClassifier` applies it to the stream of detections
produced by the face detector, holding only the latest violation for
display and forwarding emitted violations to an external sink.

Precedence (first match wins):
    1. no face                -> VIOLATION / NO_FACE
    2. more than one face     -> WARNING / MULTIPLE_FACES
    3. one face, heuristics   -> FACE_TOO_FAR, FACE_TOO_CLOSE,
                                 LOOKING_AWAY, POOR_LIGHTING
    4. otherwise              -> NORMAL
"""

from __future__ import annotations

import time
from collections import Counter, deque
from typing import Callable, Optional, Sequence, Tuple

from invigilator.cfg import ClassifierConfig
from invigilator.engine.results import (
    BoundingBox,
    ClassificationResult,
    FrameDetection,
    ViolationEvent,
)
from invigilator.utils.logger import get_logger
from invigilator.utils.violations import ProctoringStatus, ViolationType

logger = get_logger(__name__)

_DEFAULT_CONFIG = ClassifierConfig()


def status_for(violation: Optional[ViolationEvent]) -> ProctoringStatus:
    """Status implied by a violation (NORMAL when there is none)."""
    if violation is None:
        return ProctoringStatus.NORMAL
    return violation.type.status


def _single_face_violation(
    box: BoundingBox,
    frame_size: Optional[Tuple[int, int]],
    probability: Optional[float],
    config: ClassifierConfig,
) -> Optional[Tuple[ViolationType, Optional[float]]]:
    """Geometric and lighting heuristics for exactly one face."""
    if frame_size is not None:
        width, height = frame_size

        face_size_percent = box.height / height * 100
        if face_size_percent < config.min_face_size:
            return ViolationType.FACE_TOO_FAR, None
        if face_size_percent > config.max_face_size:
            return ViolationType.FACE_TOO_CLOSE, None

        center_x, center_y = box.center
        horizontal_offset = abs(center_x - width / 2) / width
        vertical_offset = abs(center_y - height / 2) / height
        if (
            horizontal_offset > config.looking_away_threshold
            or vertical_offset > config.looking_away_threshold
        ):
            return ViolationType.LOOKING_AWAY, None

    # Detector confidence doubles as a lighting proxy
    if probability is not None and probability < config.poor_lighting_threshold:
        return ViolationType.POOR_LIGHTING, probability

    return None


def classify(
    face_count: int,
    bounding_boxes: Sequence[BoundingBox] = (),
    previous: Optional[ViolationEvent] = None,
    *,
    frame_size: Optional[Tuple[int, int]] = None,
    probabilities: Sequence[Optional[float]] = (),
    config: Optional[ClassifierConfig] = None,
) -> ClassificationResult:
    """
    Classify one detection.

    Args:
        face_count: Number of faces in the frame
        bounding_boxes: Face boxes in pixels
        previous: Latest violation currently displayed; reused when the
            type has not changed so its timestamp marks when it started
        frame_size: (width, height) of the frame, enables geometric checks
        probabilities: Per-face detector confidence
        config: Heuristic thresholds

    Returns:
        ClassificationResult with status and optional violation
    """
    config = config or _DEFAULT_CONFIG

    if face_count == 0:
        violation_type, confidence = ViolationType.NO_FACE, None
    elif face_count > 1:
        violation_type, confidence = ViolationType.MULTIPLE_FACES, None
    else:
        probability = probabilities[0] if probabilities else None
        found = None
        if bounding_boxes:
            found = _single_face_violation(bounding_boxes[0], frame_size, probability, config)
        if found is None:
            return ClassificationResult(status=ProctoringStatus.NORMAL, violation=None)
        violation_type, confidence = found

    violation = ViolationEvent.create(violation_type, face_count, confidence)
    if (
        previous is not None
        and previous.type == violation.type
        and previous.message == violation.message
    ):
        violation = previous

    return ClassificationResult(status=violation_type.status, violation=violation)


class FaceCountSmoother:
    """
    Mode of the last N face counts, reduces 0/1/0/1 flicker.

    Ties prefer a single face. With N == 1 counts pass through unchanged.
    """

    def __init__(self, frames: int = 1):
        self.frames = max(1, frames)
        self._buffer: deque = deque(maxlen=self.frames)

    def __call__(self, raw_count: int) -> int:
        self._buffer.append(raw_count)
        if len(self._buffer) < self.frames:
            return raw_count

        counts = Counter(self._buffer)
        best, best_freq = self._buffer[-1], 0
        for count, freq in counts.items():
            if freq > best_freq or (freq == best_freq and count == 1):
                best, best_freq = count, freq
        return best

    def reset(self):
        self._buffer.clear()


class ViolationClassifier:
    """
    Turns the detection stream into status + latest violation.

    Memoryless by default: every detection is classified on its own.
    `debounce_frames` > 1 requires a new classification to repeat on that
    many consecutive ticks before it replaces the displayed one.

    Example:
        >>> log = ViolationLog(max_violations=5)
        >>> classifier = ViolationClassifier(sink=log.append)
        >>> classifier.update(detection)
        >>> classifier.status
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        sink: Optional[Callable[[ViolationEvent], None]] = None,
    ):
        self.config = config or ClassifierConfig()
        self.sink = sink

        self.face_count = 0
        self.latest_violation: Optional[ViolationEvent] = None
        self._has_result = False

        self._smoother = FaceCountSmoother(self.config.smooth_frames)
        self._pending: Optional[ClassificationResult] = None
        self._pending_ticks = 0
        self._last_logged: dict = {}

        self._status_listeners: list = []
        self._face_count_listeners: list = []
        self._violation_listeners: list = []

    @property
    def status(self) -> ProctoringStatus:
        """Derived from the latest violation; NORMAL before the first detection."""
        return status_for(self.latest_violation)

    def on_status_change(self, callback: Callable[[ProctoringStatus], None]):
        self._status_listeners.append(callback)

    def on_face_count_change(self, callback: Callable[[int], None]):
        self._face_count_listeners.append(callback)

    def on_violation(self, callback: Callable[[Optional[ViolationEvent]], None]):
        self._violation_listeners.append(callback)

    def update(self, detection: FrameDetection) -> ClassificationResult:
        """
        Apply one detection.

        Invalid frames classify as zero faces.

        Returns:
            The classification currently displayed
        """
        raw_count = detection.face_count if detection.is_valid_frame else 0
        face_count = self._smoother(raw_count)

        boxes = detection.bounding_boxes if detection.is_valid_frame else ()
        result = classify(
            face_count,
            boxes if face_count == len(boxes) else boxes[:1],
            self.latest_violation,
            frame_size=detection.frame_size,
            probabilities=detection.probabilities,
            config=self.config,
        )

        if face_count != self.face_count:
            self.face_count = face_count
            self._notify(self._face_count_listeners, face_count)

        if not self._debounced(result):
            return ClassificationResult(status=self.status, violation=self.latest_violation)

        self._apply(result)
        return result

    def _debounced(self, result: ClassificationResult) -> bool:
        """True once a changed classification has held for debounce_frames ticks."""
        if self._has_result and result.violation_type == (
            self.latest_violation.type if self.latest_violation else None
        ):
            self._pending, self._pending_ticks = None, 0
            return True

        if self.config.debounce_frames <= 1:
            return True

        if self._pending is not None and self._pending.violation_type == result.violation_type:
            self._pending_ticks += 1
        else:
            self._pending, self._pending_ticks = result, 1

        if self._pending_ticks >= self.config.debounce_frames:
            self._pending, self._pending_ticks = None, 0
            return True
        return False

    def _apply(self, result: ClassificationResult):
        previous_status = self.status
        previous = self.latest_violation

        self.latest_violation = result.violation
        self._has_result = True

        if result.violation is not previous:
            self._notify(self._violation_listeners, result.violation)

        if self.status != previous_status:
            logger.debug(f"Status {previous_status.value} -> {self.status.value}")
            self._notify(self._status_listeners, self.status)

        if result.violation is not None:
            self._emit(result.violation)

    def _emit(self, violation: ViolationEvent):
        """Forward to the sink, honouring the per-type cooldown."""
        if self.sink is None:
            return

        now = time.monotonic()
        cooldown = self.config.violation_cooldown_ms / 1000.0
        last = self._last_logged.get(violation.type)
        if last is not None and now - last < cooldown:
            return

        self._last_logged[violation.type] = now
        self.sink(violation)

    def _notify(self, listeners: list, value):
        for callback in listeners:
            try:
                callback(value)
            except Exception as e:
                logger.error(f"❌ Listener error: {e}")

    def reset(self):
        """Back to the initial NORMAL state."""
        self.face_count = 0
        self.latest_violation = None
        self._has_result = False
        self._smoother.reset()
        self._pending, self._pending_ticks = None, 0
        self._last_logged.clear()
