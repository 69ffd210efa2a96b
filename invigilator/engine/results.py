"""
Invigilator Engine - Results Classes

Data classes for detection and classification results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from invigilator.utils.violations import (
    ProctoringStatus,
    Severity,
    ViolationType,
    get_violation_message,
)

Point = Tuple[float, float]


@dataclass(frozen=True)
class BoundingBox:
    """Face bounding box in image-space pixel coordinates."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, top_left: Point, bottom_right: Point) -> "BoundingBox":
        return cls(
            x=float(top_left[0]),
            y=float(top_left[1]),
            width=float(bottom_right[0] - top_left[0]),
            height=float(bottom_right[1] - top_left[1]),
        )

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class FacePrediction:
    """
    A single raw prediction from a face model.

    Attributes:
        top_left: (x, y) of the box's top-left corner in pixels
        bottom_right: (x, y) of the box's bottom-right corner in pixels
        probability: Detector confidence, if the model reports one
        landmarks: Keypoints in pixels (right eye, left eye, ...)
    """
    top_left: Point
    bottom_right: Point
    probability: Optional[float] = None
    landmarks: list = field(default_factory=list)


@dataclass(frozen=True)
class FrameDetection:
    """
    Result of one poll tick.

    Superseded entirely by the next tick; the detector keeps no history.

    Attributes:
        face_count: Number of faces detected (>= 0)
        bounding_boxes: One box per detected face
        is_valid_frame: False when the video had no decoded frame
        probabilities: Per-face detector confidence
        frame_width: Width of the analysed frame in pixels
        frame_height: Height of the analysed frame in pixels
    """
    face_count: int = 0
    bounding_boxes: Tuple[BoundingBox, ...] = ()
    is_valid_frame: bool = False
    probabilities: Tuple[Optional[float], ...] = ()
    frame_width: int = 0
    frame_height: int = 0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.face_count < 0:
            raise ValueError(f"face_count must be >= 0, got {self.face_count}")
        if len(self.bounding_boxes) != self.face_count:
            raise ValueError(
                f"expected {self.face_count} bounding boxes, got {len(self.bounding_boxes)}"
            )

    @classmethod
    def invalid(cls) -> "FrameDetection":
        """Zero-face result for frames that could not be analysed."""
        return cls(face_count=0, bounding_boxes=(), is_valid_frame=False)

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        if self.frame_width > 0 and self.frame_height > 0:
            return (self.frame_width, self.frame_height)
        return None

    def to_dict(self) -> dict:
        return {
            "face_count": self.face_count,
            "is_valid_frame": self.is_valid_frame,
            "bounding_boxes": [b.to_dict() for b in self.bounding_boxes],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ViolationEvent:
    """
    A classified anomaly.

    Severity is derived from the type; it is never passed in.
    """
    type: ViolationType
    message: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    confidence: Optional[float] = None

    @classmethod
    def create(
        cls,
        violation_type: ViolationType,
        face_count: int = 0,
        confidence: Optional[float] = None,
    ) -> "ViolationEvent":
        return cls(
            type=violation_type,
            message=get_violation_message(violation_type, face_count),
            confidence=confidence,
        )

    @property
    def severity(self) -> Severity:
        return self.type.severity

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass(frozen=True)
class ClassificationResult:
    """Instantaneous classification of one detection."""
    status: ProctoringStatus = ProctoringStatus.NORMAL
    violation: Optional[ViolationEvent] = None

    @property
    def violation_type(self) -> Optional[ViolationType]:
        return self.violation.type if self.violation else None
