"""Shared fakes: no camera, microphone or MediaPipe needed."""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from invigilator.cfg import ClassifierConfig, DetectorConfig, SessionConfig
from invigilator.data.media import MediaDeviceError, MediaStream, MediaTrack
from invigilator.engine.results import FacePrediction
from invigilator.lockdown import Document
from invigilator.models.face import ModelCache, ModelLoadError


class FakeVideoSource:
    def __init__(self, width: int = 1280, height: int = 720, paused: bool = False):
        self.video_width = width
        self.video_height = height
        self.paused = paused
        self.reads = 0

    def read_frame(self) -> Optional[np.ndarray]:
        self.reads += 1
        if self.video_width <= 0 or self.video_height <= 0:
            return None
        return np.zeros((self.video_height, self.video_width, 3), dtype=np.uint8)


class FakeFaceModel:
    def __init__(self, predictions: Optional[List[FacePrediction]] = None, error: Optional[Exception] = None):
        self.predictions = predictions or []
        self.error = error
        self.calls = 0
        self.disposed = False

    def estimate_faces(self, frame):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.predictions)

    def dispose(self):
        self.disposed = True


class FakeProvider:
    def __init__(self, model: Optional[FakeFaceModel] = None, fail: bool = False, delay: float = 0.0):
        self.model = model or FakeFaceModel()
        self.fail = fail
        self.delay = delay
        self.loads = 0

    async def load(self):
        self.loads += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ModelLoadError("weights unavailable")
        return self.model


class FakeTrack(MediaTrack):
    """Device track that also serves frames like a camera."""

    def __init__(self, kind: str, width: int = 1280, height: int = 720, release_error: Optional[Exception] = None):
        super().__init__(kind, label=f"fake-{kind}")
        self.release_error = release_error
        self.video_width = width
        self.video_height = height
        self.paused = False
        self.releases = 0

    def read_frame(self):
        if not self.live:
            return None
        return np.zeros((self.video_height, self.video_width, 3), dtype=np.uint8)

    def _release(self):
        self.releases += 1
        if self.release_error is not None:
            raise self.release_error


class FakeDevices:
    def __init__(self, errors: Optional[dict] = None, release_errors: Optional[dict] = None):
        self.errors = errors or {}
        self.release_errors = release_errors or {}
        self.requests: List[dict] = []
        self.streams: List[MediaStream] = []

    async def get_user_media(self, constraints: dict) -> MediaStream:
        kind = "video" if "video" in constraints else "audio"
        self.requests.append(constraints)
        if kind in self.errors:
            raise self.errors[kind]
        stream = MediaStream([FakeTrack(kind, release_error=self.release_errors.get(kind))])
        self.streams.append(stream)
        return stream

    def live_tracks(self) -> List[MediaTrack]:
        return [t for s in self.streams for t in s.get_tracks() if t.live]


class FakeKeyboardLock:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.locked_keys = None
        self.unlocks = 0

    def lock(self, keys):
        if self.fail:
            raise NotImplementedError("keyboard lock not supported")
        self.locked_keys = list(keys)

    def unlock(self):
        self.unlocks += 1


class SpyDocument(Document):
    """Records every add/remove call."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.added = []
        self.removed = []

    def add_event_listener(self, type, handler, *, capture=False, passive=None):
        self.added.append((type, handler, capture))
        super().add_event_listener(type, handler, capture=capture, passive=passive)

    def remove_event_listener(self, type, handler, capture=False):
        self.removed.append((type, handler, capture))
        super().remove_event_listener(type, handler, capture=capture)


def not_allowed() -> MediaDeviceError:
    return MediaDeviceError("NotAllowedError", "Permission denied")


@pytest.fixture
def face_model():
    return FakeFaceModel()


@pytest.fixture
def model_cache(face_model):
    return ModelCache(FakeProvider(face_model))


@pytest.fixture
def session_config():
    return SessionConfig(
        detector=DetectorConfig(detection_interval_ms=10),
        classifier=ClassifierConfig(violation_cooldown_ms=0, max_violations=3),
    )
