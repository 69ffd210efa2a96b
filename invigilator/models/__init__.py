from __future__ import annotations
"""
Invigilator Models Module

Contains the face detection model and detector.
"""

from invigilator.models.face import FaceDetector, ModelCache, get_model_cache

__all__ = [
    "FaceDetector",
    "ModelCache",
    "get_model_cache",
]
