from __future__ import annotations
"""
Face Detector

Polls a borrowed video source on a fixed cadence and emits one
`FrameDetection` per tick.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Callable, List, Optional

import numpy as np

from invigilator.cfg import DetectorConfig
from invigilator.engine.predictor import BasePredictor
from invigilator.engine.results import BoundingBox, FacePrediction, FrameDetection
from invigilator.engine.scheduler import PollScheduler
from invigilator.models.face.model import ModelCache, get_model_cache
from invigilator.utils.logger import get_logger

if TYPE_CHECKING:
    from invigilator.data.media import VideoSource

logger = get_logger(__name__)

MODEL_NOT_LOADED = "Model not loaded. Please wait for initialization."
VIDEO_NOT_AVAILABLE = "Video source not available."


class FaceDetector(BasePredictor):
    """
    Face detection loop over a video source.

    The detector only borrows the video source; media acquisition owns it.
    Results are pushed to `on_detection` listeners, nothing is retained
    except the most recent detection.

    Example:
        >>> detector = FaceDetector(media.video_source, cache)
        >>> await detector.initialize()
        >>> detector.on_detection(classifier.update)
        >>> detector.start_detection()
    """

    def __init__(
        self,
        video_source: Optional["VideoSource"] = None,
        cache: Optional[ModelCache] = None,
        cfg: Optional[DetectorConfig] = None,
    ):
        """
        Initialize face detector.

        Args:
            video_source: Frame source to poll
            cache: Shared model cache (application cache if None)
            cfg: Detector configuration
        """
        super().__init__(cfg or DetectorConfig())

        self.video_source = video_source
        self.cache = cache if cache is not None else get_model_cache()

        self.error: Optional[str] = None
        self.is_model_loading = False
        self.model_failed = False
        self.last_detection: Optional[FrameDetection] = None
        self.inference_errors = 0

        self.scheduler = PollScheduler(
            self.tick,
            interval=self.cfg.interval_seconds,
            name="face-detection",
        )

    @property
    def is_detecting(self) -> bool:
        return self.scheduler.running

    @property
    def is_ready(self) -> bool:
        return self.model is not None

    async def initialize(self) -> bool:
        """
        Load the face model through the cache.

        A failure is persistent: the detector will not retry on its own.

        Returns:
            True if the model is available
        """
        if self.model is not None:
            return True
        if self.model_failed:
            return False

        self.is_model_loading = True
        try:
            self.model = await self.cache.get()
            self.error = None
            return True
        except Exception as e:
            self.model_failed = True
            self.error = f"Failed to load face detection model: {e}"
            logger.error(f"❌ {self.error}")
            return False
        finally:
            self.is_model_loading = False

    def start_detection(self) -> bool:
        """
        Start the poll loop.

        Returns:
            False (with `error` set) if the model or video source is missing
        """
        if self.model is None:
            self.error = MODEL_NOT_LOADED
            return False
        if self.video_source is None:
            self.error = VIDEO_NOT_AVAILABLE
            return False

        self.error = None
        if self.scheduler.start():
            logger.info("🎥 Face detection started")
        return True

    def stop_detection(self):
        """Cancel the pending tick."""
        if self.scheduler.running:
            logger.info("⏸️ Face detection stopped")
        self.scheduler.stop()

    def on_detection(self, callback: Callable[[FrameDetection], Any]):
        """Register a listener for every detection."""
        self.add_callback("on_detection", callback)

    def preprocess(self, source: Optional["VideoSource"]) -> Optional[np.ndarray]:
        """
        Grab the current frame if the source is ready.

        Returns:
            The frame, or None when there is no decoded frame to analyse
        """
        if source is None:
            return None
        if source.video_width <= 0 or source.video_height <= 0 or source.paused:
            return None
        return source.read_frame()

    def inference(self, frame: np.ndarray) -> List[FacePrediction]:
        return self.model.estimate_faces(frame)

    def postprocess(self, preds: List[FacePrediction], frame: np.ndarray) -> FrameDetection:
        """Convert corner predictions into pixel boxes."""
        preds = [
            p for p in preds
            if p.probability is None or p.probability >= self.cfg.face_confidence
        ]
        h, w = frame.shape[:2]

        return FrameDetection(
            face_count=len(preds),
            bounding_boxes=tuple(
                BoundingBox.from_corners(p.top_left, p.bottom_right) for p in preds
            ),
            is_valid_frame=True,
            probabilities=tuple(p.probability for p in preds),
            frame_width=int(w),
            frame_height=int(h),
        )

    async def detect_faces(self) -> FrameDetection:
        """
        Run one detection against the current frame.

        Never raises: an unready source or an inference error yields a
        zero-face invalid frame.
        """
        if self.model is None:
            return FrameDetection.invalid()

        try:
            frame = self.preprocess(self.video_source)
            if frame is None:
                return FrameDetection.invalid()
            return await asyncio.to_thread(self, frame)
        except Exception as e:
            self.inference_errors += 1
            logger.warning(f"⚠️ Face detection error: {e}")
            return FrameDetection.invalid()

    async def tick(self):
        """One poll tick: detect, then notify listeners."""
        detection = await self.detect_faces()
        self.last_detection = detection
        self.run_callbacks("on_detection", detection)

    async def dispose(self, release_model: bool = False):
        """
        Stop detection and drop the model reference.

        Args:
            release_model: Also free the cached model's compute resources
        """
        self.stop_detection()
        await self.scheduler.join()
        self.model = None
        if release_model:
            self.cache.dispose()
