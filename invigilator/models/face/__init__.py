from __future__ import annotations
"""
Face Detection Model

MediaPipe face model provider, shared model cache and the polling detector.
"""

from invigilator.models.face.model import (
    FaceModel,
    FaceModelProvider,
    MediaPipeFaceModel,
    MediaPipeFaceModelProvider,
    ModelCache,
    ModelLoadError,
    get_model_cache,
)
from invigilator.models.face.predictor import FaceDetector

__all__ = [
    "FaceModel",
    "FaceModelProvider",
    "MediaPipeFaceModel",
    "MediaPipeFaceModelProvider",
    "ModelCache",
    "ModelLoadError",
    "get_model_cache",
    "FaceDetector",
]
