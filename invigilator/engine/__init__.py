from __future__ import annotations
"""
Invigilator Engine - Core data model and decision logic.

- BasePredictor: Inference pipeline base class
- FrameDetection / ViolationEvent: Per-tick results
- ViolationClassifier: Detection stream -> status + violation
- ViolationLog: External violation sink with threshold callback
- PollScheduler: Cancellable self-rescheduling tick chain
"""

from invigilator.engine.predictor import BasePredictor
from invigilator.engine.results import (
    BoundingBox,
    ClassificationResult,
    FacePrediction,
    FrameDetection,
    ViolationEvent,
)
from invigilator.engine.classifier import (
    FaceCountSmoother,
    ViolationClassifier,
    classify,
    status_for,
)
from invigilator.engine.violation_log import ViolationLog
from invigilator.engine.scheduler import CancellationToken, PollScheduler

__all__ = [
    # Base classes
    "BasePredictor",
    # Results
    "BoundingBox",
    "ClassificationResult",
    "FacePrediction",
    "FrameDetection",
    "ViolationEvent",
    # Classification
    "FaceCountSmoother",
    "ViolationClassifier",
    "classify",
    "status_for",
    "ViolationLog",
    # Scheduling
    "CancellationToken",
    "PollScheduler",
]
