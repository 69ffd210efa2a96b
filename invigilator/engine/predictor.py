"""
Invigilator Engine - Base Predictor Class

Handles inference logic with preprocessing, inference, and postprocessing.
"""

from abc import ABC, abstractmethod
from typing import Any

from invigilator.cfg import BaseConfig
from invigilator.utils.logger import get_logger

logger = get_logger(__name__)


class BasePredictor(ABC):
    """
    Base class for all predictors.

    Predictors handle the inference pipeline:
    1. preprocess() - Prepare input data
    2. inference() - Run model inference
    3. postprocess() - Process model outputs

    Attributes:
        cfg: Configuration for prediction
        model: Loaded model instance

    Example:
        >>> predictor = FaceDetector(video_source, cache, cfg)
        >>> results = predictor(frame)
    """

    def __init__(self, cfg: BaseConfig):
        """
        Initialize predictor.

        Args:
            cfg: Predictor configuration
        """
        self.cfg = cfg
        self.model = None
        self._callbacks = {}

    @abstractmethod
    def preprocess(self, source: Any) -> Any:
        """
        Preprocess input before inference.

        Args:
            source: Raw input (frame source, image, etc.)

        Returns:
            Preprocessed input ready for model
        """
        pass

    @abstractmethod
    def inference(self, data: Any) -> Any:
        """
        Run model inference.

        Args:
            data: Preprocessed input

        Returns:
            Raw model outputs
        """
        pass

    @abstractmethod
    def postprocess(self, preds: Any, source: Any) -> Any:
        """
        Postprocess model outputs.

        Args:
            preds: Raw model predictions
            source: Preprocessed input for reference

        Returns:
            Results object with processed predictions
        """
        pass

    def __call__(self, frame: Any) -> Any:
        """
        Run inference and postprocessing on an already preprocessed frame.

        Args:
            frame: Preprocessed input

        Returns:
            Prediction results
        """
        preds = self.inference(frame)
        return self.postprocess(preds, frame)

    def add_callback(self, event: str, callback):
        """Add callback for an event."""
        if event not in self._callbacks:
            self._callbacks[event] = []
        self._callbacks[event].append(callback)

    def remove_callback(self, event: str, callback):
        """Remove a previously added callback."""
        callbacks = self._callbacks.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def run_callbacks(self, event: str, *args, **kwargs):
        """Run all callbacks for an event."""
        for callback in list(self._callbacks.get(event, [])):
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"❌ Callback '{event}' failed: {e}")
