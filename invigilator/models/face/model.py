"""
Face Model Providers

A provider loads a face model asynchronously; the model turns a decoded
BGR frame into a list of `FacePrediction`. `ModelCache` makes sure the
model is loaded once per process and shared by every detector.
"""

from __future__ import annotations

import asyncio
import threading
from functools import lru_cache
from typing import List, Optional, Protocol

import numpy as np

from invigilator.cfg import get_settings
from invigilator.cfg.config import DEFAULT_FACE_CONFIDENCE, DEFAULT_FACE_MODEL_SELECTION
from invigilator.engine.results import FacePrediction
from invigilator.utils.logger import get_logger

logger = get_logger(__name__)

# Lazy imports
mp = None
cv2 = None


def _import_mediapipe():
    """Lazy import MediaPipe."""
    global mp
    if mp is None:
        import mediapipe as _mp
        mp = _mp
    return mp


def _import_cv2():
    """Lazy import OpenCV."""
    global cv2
    if cv2 is None:
        import cv2 as _cv2
        cv2 = _cv2
    return cv2


class ModelLoadError(RuntimeError):
    """Raised when a face model cannot be loaded."""


class FaceModel(Protocol):
    def estimate_faces(self, frame: np.ndarray) -> List[FacePrediction]:
        ...

    def dispose(self) -> None:
        ...


class FaceModelProvider(Protocol):
    async def load(self) -> FaceModel:
        ...


class MediaPipeFaceModel:
    """
    MediaPipe Face Detection (BlazeFace) wrapper.

    `process()` is not re-entrant, so calls are serialized with a lock when
    several sessions share the cached model.
    """

    def __init__(self, detector, min_confidence: float = DEFAULT_FACE_CONFIDENCE):
        self._detector = detector
        self._lock = threading.Lock()
        self.min_confidence = min_confidence

    def estimate_faces(self, frame: np.ndarray) -> List[FacePrediction]:
        """
        Detect faces in a frame.

        Args:
            frame: BGR image as numpy array

        Returns:
            One prediction per face with pixel corners and keypoints
        """
        cv2 = _import_cv2()
        h, w = frame.shape[:2]
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        with self._lock:
            if self._detector is None:
                raise RuntimeError("Face model has been disposed")
            results = self._detector.process(rgb_frame)

        predictions = []
        for detection in results.detections or []:
            score = float(detection.score[0]) if detection.score else None
            if score is not None and score < self.min_confidence:
                continue

            bbox = detection.location_data.relative_bounding_box
            x1 = bbox.xmin * w
            y1 = bbox.ymin * h
            predictions.append(FacePrediction(
                top_left=(x1, y1),
                bottom_right=(x1 + bbox.width * w, y1 + bbox.height * h),
                probability=score,
                landmarks=[
                    (kp.x * w, kp.y * h)
                    for kp in detection.location_data.relative_keypoints
                ],
            ))

        return predictions

    def dispose(self):
        """Release the MediaPipe graph once any running `process()` returns."""
        with self._lock:
            if self._detector is not None:
                self._detector.close()
                self._detector = None


class MediaPipeFaceModelProvider:
    """Loads MediaPipe Face Detection off the event loop."""

    def __init__(
        self,
        min_confidence: float = DEFAULT_FACE_CONFIDENCE,
        model_selection: int = DEFAULT_FACE_MODEL_SELECTION,
    ):
        self.min_confidence = min_confidence
        self.model_selection = model_selection

    def _load_sync(self) -> MediaPipeFaceModel:
        mp = _import_mediapipe()
        detector = mp.solutions.face_detection.FaceDetection(
            model_selection=self.model_selection,
            min_detection_confidence=self.min_confidence,
        )
        return MediaPipeFaceModel(detector, self.min_confidence)

    async def load(self) -> FaceModel:
        try:
            model = await asyncio.to_thread(self._load_sync)
        except Exception as e:
            raise ModelLoadError(str(e)) from e

        logger.info("✅ MediaPipe face detection initialized")
        return model


class ModelCache:
    """
    Load-once holder for a face model.

    Concurrent `get()` calls share a single in-flight load. A failed load
    is not cached, so a later `get()` (e.g. a remounted session) retries.

    Example:
        >>> cache = ModelCache(MediaPipeFaceModelProvider())
        >>> model = await cache.get()
        >>> ...
        >>> cache.dispose()
    """

    def __init__(self, provider: FaceModelProvider):
        self.provider = provider
        self.load_count = 0

        self._model: Optional[FaceModel] = None
        self._loading: Optional[asyncio.Task] = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    @property
    def model(self) -> Optional[FaceModel]:
        return self._model

    async def get(self) -> FaceModel:
        """Return the cached model, loading it on first use."""
        if self._model is not None:
            return self._model

        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())

        # Shielded so a cancelled caller does not abort a shared load
        return await asyncio.shield(self._loading)

    async def _load(self) -> FaceModel:
        try:
            logger.info("📥 Loading face detection model...")
            model = await self.provider.load()
            self._model = model
            self.load_count += 1
            return model
        finally:
            self._loading = None

    def dispose(self):
        """Free the model's compute resources. The next `get()` reloads."""
        if self._model is not None:
            self._model.dispose()
            self._model = None
            logger.info("🧹 Face detection model disposed")


@lru_cache()
def get_model_cache() -> ModelCache:
    """Get the application-level model cache."""
    settings = get_settings()
    return ModelCache(MediaPipeFaceModelProvider(
        min_confidence=settings.face_confidence,
        model_selection=settings.face_model_selection,
    ))
