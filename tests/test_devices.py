import time
from types import SimpleNamespace

import numpy as np
import pytest

from invigilator.data import media as media_module
from invigilator.data.media import (
    CameraTrack,
    LocalMediaDevices,
    MediaDeviceError,
    MicrophoneTrack,
    describe_media_error,
)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


class FakeCapture:
    def __init__(self, opened=True, ok=True, width=640, height=480):
        self.opened = opened
        self.ok = ok
        self.props = {3: width, 4: height}
        self.released = False

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value

    def get(self, prop):
        return self.props.get(prop, 0)

    def read(self):
        time.sleep(0.005)
        if not self.ok:
            return False, None
        return True, np.zeros((int(self.props[4]), int(self.props[3]), 3), dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture
def fake_cv2(monkeypatch):
    state = SimpleNamespace(capture=FakeCapture(), indexes=[])

    def video_capture(index):
        state.indexes.append(index)
        return state.capture

    module = SimpleNamespace(
        VideoCapture=video_capture,
        CAP_PROP_FRAME_WIDTH=3,
        CAP_PROP_FRAME_HEIGHT=4,
        CAP_PROP_FPS=5,
    )
    monkeypatch.setattr(media_module, "_import_cv2", lambda: module)
    return state


VIDEO = {"device": 1, "width": 1280, "height": 720, "frame_rate": 30}
AUDIO = {"sample_rate": 16000, "channels": 1}


def test_camera_opens_with_constraints(fake_cv2):
    track = LocalMediaDevices()._open_camera(VIDEO)
    try:
        wait_for(lambda: track.video_width > 0)

        assert fake_cv2.indexes == [1]
        assert fake_cv2.capture.props[5] == 30
        assert (track.video_width, track.video_height) == (1280, 720)
        assert track.read_frame().shape == (720, 1280, 3)
        assert track.label == "camera:1"
    finally:
        track.stop()

    assert fake_cv2.capture.released
    assert track.read_frame() is None


def test_missing_camera_is_not_found(fake_cv2):
    fake_cv2.capture = FakeCapture(opened=False)

    with pytest.raises(MediaDeviceError) as excinfo:
        LocalMediaDevices()._open_camera(VIDEO)

    assert excinfo.value.name == "NotFoundError"
    assert describe_media_error(excinfo.value).startswith("No camera found")
    assert fake_cv2.capture.released


def test_camera_without_frames_is_not_readable(fake_cv2):
    fake_cv2.capture = FakeCapture(ok=False)

    with pytest.raises(MediaDeviceError) as excinfo:
        LocalMediaDevices()._open_camera(VIDEO)

    assert excinfo.value.name == "NotReadableError"
    assert "already in use" in describe_media_error(excinfo.value)
    assert fake_cv2.capture.released


def test_camera_track_reports_zero_size_when_stream_drops():
    capture = FakeCapture()
    track = CameraTrack(capture)
    try:
        wait_for(lambda: track.video_width > 0)

        capture.ok = False
        wait_for(lambda: track.video_width == 0)

        assert track.video_height == 0
        assert track.read_frame() is None

        capture.ok = True
        wait_for(lambda: track.video_width > 0)
    finally:
        track.stop()


class FakeInputStream:
    def __init__(self, samplerate, channels, callback, error=None):
        self.samplerate = samplerate
        self.channels = channels
        self.callback = callback
        self.error = error
        self.started = False
        self.closed = False

    def start(self):
        if self.error is not None:
            raise self.error
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class FakeSoundDevice:
    class PortAudioError(Exception):
        pass

    def __init__(self, query_error=None, settings_error=None, stream_error=None):
        self.query_error = query_error
        self.settings_error = settings_error
        self.stream_error = stream_error
        self.streams = []

    def query_devices(self, kind=None):
        if self.query_error is not None:
            raise self.query_error
        return {"name": "Built-in Microphone"}

    def check_input_settings(self, samplerate=None, channels=None):
        if self.settings_error is not None:
            raise self.settings_error

    def InputStream(self, samplerate, channels, callback):
        stream = FakeInputStream(samplerate, channels, callback, self.stream_error)
        self.streams.append(stream)
        return stream


def use_sounddevice(monkeypatch, sd):
    monkeypatch.setattr(media_module, "_import_sounddevice", lambda: sd)
    return sd


def test_microphone_opens_and_tracks_level(monkeypatch):
    sd = use_sounddevice(monkeypatch, FakeSoundDevice())

    track = LocalMediaDevices()._open_microphone(AUDIO)
    stream = sd.streams[0]

    assert isinstance(track, MicrophoneTrack)
    assert track.label == "Built-in Microphone"
    assert stream.started and stream.samplerate == 16000

    stream.callback(np.full((512, 1), 0.5, dtype=np.float32), 512, None, None)
    assert track.level == pytest.approx(0.5)

    track.stop()
    assert stream.closed and not stream.started


def test_missing_audio_backend_is_not_found(monkeypatch):
    def no_portaudio():
        raise OSError("PortAudio library not found")

    monkeypatch.setattr(media_module, "_import_sounddevice", no_portaudio)

    with pytest.raises(MediaDeviceError) as excinfo:
        LocalMediaDevices()._open_microphone(AUDIO)

    assert excinfo.value.name == "NotFoundError"


def test_no_input_device_is_not_found(monkeypatch):
    sd = FakeSoundDevice()
    sd.query_error = sd.PortAudioError("No input device")
    use_sounddevice(monkeypatch, sd)

    with pytest.raises(MediaDeviceError) as excinfo:
        LocalMediaDevices()._open_microphone(AUDIO)

    assert excinfo.value.name == "NotFoundError"


def test_unsupported_settings_are_overconstrained(monkeypatch):
    use_sounddevice(monkeypatch, FakeSoundDevice(settings_error=ValueError("Invalid sample rate")))

    with pytest.raises(MediaDeviceError) as excinfo:
        LocalMediaDevices()._open_microphone(AUDIO)

    assert excinfo.value.name == "OverconstrainedError"
    assert describe_media_error(excinfo.value).startswith("Camera constraints could not be satisfied")


def test_busy_microphone_is_not_readable(monkeypatch):
    sd = FakeSoundDevice()
    sd.stream_error = sd.PortAudioError("Device unavailable")
    use_sounddevice(monkeypatch, sd)

    with pytest.raises(MediaDeviceError) as excinfo:
        LocalMediaDevices()._open_microphone(AUDIO)

    assert excinfo.value.name == "NotReadableError"
