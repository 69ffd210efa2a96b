from __future__ import annotations
"""
Violation Types and Constants

Defines the proctoring violation taxonomy, severities, coarse status
values, and candidate-facing messages.
"""

from enum import Enum


class Severity(str, Enum):
    """Violation severity levels."""
    MEDIUM = "medium"
    HIGH = "high"


class ProctoringStatus(str, Enum):
    """Coarse status shown to the candidate (badge color/text/icon)."""
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    VIOLATION = "VIOLATION"


class ViolationType(str, Enum):
    """Types of proctoring violations."""
    NO_FACE = "NO_FACE"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    LOOKING_AWAY = "LOOKING_AWAY"
    FACE_TOO_CLOSE = "FACE_TOO_CLOSE"
    FACE_TOO_FAR = "FACE_TOO_FAR"
    POOR_LIGHTING = "POOR_LIGHTING"

    @property
    def severity(self) -> Severity:
        return SEVERITY_BY_TYPE[self]

    @property
    def status(self) -> ProctoringStatus:
        return STATUS_BY_TYPE[self]


SEVERITY_BY_TYPE = {
    ViolationType.NO_FACE: Severity.HIGH,
    ViolationType.MULTIPLE_FACES: Severity.HIGH,
    ViolationType.FACE_TOO_CLOSE: Severity.HIGH,
    ViolationType.FACE_TOO_FAR: Severity.HIGH,
    ViolationType.LOOKING_AWAY: Severity.MEDIUM,
    ViolationType.POOR_LIGHTING: Severity.MEDIUM,
}

# MULTIPLE_FACES is high severity but only ever raises a WARNING status.
STATUS_BY_TYPE = {
    ViolationType.NO_FACE: ProctoringStatus.VIOLATION,
    ViolationType.MULTIPLE_FACES: ProctoringStatus.WARNING,
    ViolationType.FACE_TOO_CLOSE: ProctoringStatus.VIOLATION,
    ViolationType.FACE_TOO_FAR: ProctoringStatus.VIOLATION,
    ViolationType.LOOKING_AWAY: ProctoringStatus.WARNING,
    ViolationType.POOR_LIGHTING: ProctoringStatus.WARNING,
}


VIOLATION_MESSAGES = {
    ViolationType.NO_FACE: "No face detected",
    ViolationType.MULTIPLE_FACES: "{face_count} faces detected",
    ViolationType.LOOKING_AWAY: "Please look at the screen",
    ViolationType.FACE_TOO_CLOSE: "Please move away from the camera",
    ViolationType.FACE_TOO_FAR: "Please move closer to the camera",
    ViolationType.POOR_LIGHTING: "Poor lighting conditions detected",
}


def get_violation_message(violation_type: ViolationType, face_count: int = 0) -> str:
    """
    Get the candidate-facing message for a violation.

    Args:
        violation_type: Type of violation
        face_count: Faces in the frame (used by MULTIPLE_FACES)

    Returns:
        Message string
    """
    template = VIOLATION_MESSAGES.get(violation_type)
    if not template:
        return "Please maintain proper exam conduct."
    return template.format(face_count=face_count)
