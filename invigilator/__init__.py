"""
Invigilator - Client-side Exam Proctoring

Camera and microphone acquisition, a polling face detector, a violation
classifier and a lockdown layer for proctored exams.

Usage:
    from invigilator import ProctoringSession, Document

    # Full session on the local camera
    async with ProctoringSession(document=Document()) as session:
        ...
        print(session.snapshot()["status"])

    # Classification only
    from invigilator import classify
    result = classify(face_count=2)
    result.status  # ProctoringStatus.WARNING

    # Local HTTP agent
    from invigilator.api import start_server
    start_server()
"""

__version__ = "0.1.0"

from invigilator.cfg import SessionConfig, get_settings
from invigilator.engine import (
    FrameDetection,
    ViolationClassifier,
    ViolationEvent,
    ViolationLog,
    classify,
)
from invigilator.lockdown import Document, LockdownController
from invigilator.utils.violations import ProctoringStatus, ViolationType


# Heavier components (lazy loaded when accessed)
def __getattr__(name: str):
    """Lazy load session and device components."""
    if name == "ProctoringSession":
        from invigilator.service.proctoring import ProctoringSession
        return ProctoringSession
    elif name == "FaceDetector":
        from invigilator.models.face import FaceDetector
        return FaceDetector
    elif name == "MediaAcquisition":
        from invigilator.data.media import MediaAcquisition
        return MediaAcquisition
    elif name == "ViolationPublisher":
        from invigilator.data.publisher import ViolationPublisher
        return ViolationPublisher
    raise AttributeError(f"module 'invigilator' has no attribute '{name}'")


# Public API
__all__ = [
    # Configs
    "SessionConfig",
    "get_settings",
    # Engine
    "FrameDetection",
    "ViolationClassifier",
    "ViolationEvent",
    "ViolationLog",
    "classify",
    "ProctoringStatus",
    "ViolationType",
    # Lockdown
    "Document",
    "LockdownController",
    # Lazy loaded
    "ProctoringSession",
    "FaceDetector",
    "MediaAcquisition",
    "ViolationPublisher",
    # Version
    "__version__",
]
