from __future__ import annotations
"""
Media Acquisition

Owns the camera and microphone for a proctored session. Devices are
reached through a `MediaDevices` implementation; `LocalMediaDevices`
uses OpenCV for the camera and sounddevice for the microphone.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import numpy as np

from invigilator.cfg import MediaConfig
from invigilator.utils.logger import get_logger

logger = get_logger(__name__)

# Lazy imports
cv2 = None
sd = None


def _import_cv2():
    """Lazy import OpenCV."""
    global cv2
    if cv2 is None:
        import cv2 as _cv2
        cv2 = _cv2
    return cv2


def _import_sounddevice():
    """Lazy import sounddevice (needs the PortAudio library)."""
    global sd
    if sd is None:
        import sounddevice as _sd
        sd = _sd
    return sd


# ============================================================================
# Errors
# ============================================================================

class MediaDeviceError(Exception):
    """
    Device or permission failure, named after the getUserMedia error names
    (NotAllowedError, NotFoundError, NotReadableError, ...).
    """

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or name)
        self.name = name
        self.message = message


def describe_media_error(error: Exception) -> str:
    """User-facing message for a device error."""
    name = getattr(error, "name", type(error).__name__)

    if name in ("NotAllowedError", "PermissionDeniedError"):
        return "Camera permission denied. Please allow camera access and try again."
    if name in ("NotFoundError", "DevicesNotFoundError"):
        return "No camera found. Please connect a camera and try again."
    if name in ("NotReadableError", "TrackStartError"):
        return (
            "Camera is already in use by another application. "
            "Please close other apps using the camera."
        )
    if name in ("OverconstrainedError", "ConstraintNotSatisfiedError"):
        return "Camera constraints could not be satisfied. Please try a different camera."
    if name == "SecurityError":
        return "Camera access blocked due to security restrictions."

    message = getattr(error, "message", None) or str(error) or "Unknown error"
    return f"Camera access failed: {message}"


# ============================================================================
# Tracks and streams
# ============================================================================

class VideoSource(Protocol):
    """What the face detector reads: decoded size, paused flag, latest frame."""

    @property
    def video_width(self) -> int:
        ...

    @property
    def video_height(self) -> int:
        ...

    @property
    def paused(self) -> bool:
        ...

    def read_frame(self) -> Optional[np.ndarray]:
        ...


class MediaTrack:
    """A live device track. `stop()` is idempotent."""

    def __init__(self, kind: str, label: str = ""):
        self.kind = kind
        self.label = label
        self.ready_state = "live"

    @property
    def live(self) -> bool:
        return self.ready_state == "live"

    def stop(self):
        if self.ready_state == "ended":
            return
        self.ready_state = "ended"
        self._release()
        logger.debug(f"Track stopped: {self.kind} ({self.label})")

    def _release(self):
        pass


class MediaStream:
    """A group of tracks returned by one device request."""

    def __init__(self, tracks: Optional[List[MediaTrack]] = None):
        self._tracks = list(tracks or [])

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    def get_audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    def stop(self):
        """Stop every track; a track that fails to release does not stop the rest."""
        for track in self._tracks:
            try:
                track.stop()
            except Exception as e:
                logger.error(f"❌ Failed to release {track.kind} track ({track.label}): {e}")


class CameraTrack(MediaTrack):
    """
    OpenCV camera track.

    A background thread keeps the latest decoded frame. A failed read
    clears it, so the track reports zero size until frames arrive again.
    """

    def __init__(self, capture, label: str = "camera"):
        super().__init__("video", label)
        self._capture = capture
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self.paused = False

        self._thread = threading.Thread(target=self._reader, name="camera-reader", daemon=True)
        self._thread.start()

    def _reader(self):
        while self.live:
            ok, frame = self._capture.read()
            with self._lock:
                self._frame = frame if ok else None
            if not ok:
                time.sleep(0.05)

    @property
    def video_width(self) -> int:
        frame = self._frame
        return 0 if frame is None else int(frame.shape[1])

    @property
    def video_height(self) -> int:
        frame = self._frame
        return 0 if frame is None else int(frame.shape[0])

    def read_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._frame is None else self._frame.copy()

    def _release(self):
        self._thread.join(timeout=1.0)
        self._capture.release()
        with self._lock:
            self._frame = None


class MicrophoneTrack(MediaTrack):
    """sounddevice input track; tracks the RMS level of the latest block."""

    def __init__(self, label: str = "microphone"):
        super().__init__("audio", label)
        self.level = 0.0
        self._stream = None

    def attach(self, stream):
        self._stream = stream

    def on_audio(self, indata, frames, time_info, status):
        if status:
            logger.debug(f"Audio status: {status}")
        self.level = float(np.sqrt(np.mean(np.square(indata))))

    def _release(self):
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None


class MediaDevices(Protocol):
    async def get_user_media(self, constraints: dict) -> MediaStream:
        """Open the devices named in `constraints`, raising MediaDeviceError."""
        ...


class LocalMediaDevices:
    """Local camera (OpenCV) and microphone (sounddevice)."""

    async def get_user_media(self, constraints: dict) -> MediaStream:
        tracks: List[MediaTrack] = []
        try:
            if constraints.get("video"):
                tracks.append(await asyncio.to_thread(self._open_camera, constraints["video"]))
            if constraints.get("audio"):
                tracks.append(await asyncio.to_thread(self._open_microphone, constraints["audio"]))
        except Exception:
            for track in tracks:
                track.stop()
            raise
        return MediaStream(tracks)

    def _open_camera(self, video: dict) -> CameraTrack:
        cv2 = _import_cv2()
        index = video.get("device", 0)

        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise MediaDeviceError("NotFoundError", f"Camera {index} could not be opened")

        # Ideal constraints, the driver may pick something else
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, video.get("width", 1280))
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, video.get("height", 720))
        capture.set(cv2.CAP_PROP_FPS, video.get("frame_rate", 30))

        ok, _ = capture.read()
        if not ok:
            capture.release()
            raise MediaDeviceError("NotReadableError", f"Camera {index} returned no frames")

        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"📷 Camera {index} opened ({width}x{height})")
        return CameraTrack(capture, label=f"camera:{index}")

    def _open_microphone(self, audio: dict) -> MicrophoneTrack:
        try:
            sd = _import_sounddevice()
        except OSError as e:
            raise MediaDeviceError("NotFoundError", f"Audio backend unavailable: {e}") from e

        sample_rate = audio.get("sample_rate", 44100)
        channels = audio.get("channels", 1)

        try:
            device = sd.query_devices(kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise MediaDeviceError("NotFoundError", str(e)) from e

        try:
            sd.check_input_settings(samplerate=sample_rate, channels=channels)
        except (ValueError, sd.PortAudioError) as e:
            raise MediaDeviceError("OverconstrainedError", str(e)) from e

        track = MicrophoneTrack(label=device.get("name", "microphone"))
        try:
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=channels,
                callback=track.on_audio,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise MediaDeviceError("NotReadableError", str(e)) from e

        track.attach(stream)
        logger.info(f"🎙️ Microphone opened: {track.label} ({sample_rate} Hz)")
        return track


# ============================================================================
# Recording
# ============================================================================

@dataclass
class RecordedChunk:
    """A finished recording on disk."""
    path: Path
    started_at: datetime
    duration: float
    frames: int = 0

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "started_at": self.started_at.isoformat(),
            "duration": self.duration,
            "frames": self.frames,
        }


class VideoRecorder:
    """Writes frames from a video source to a file with cv2.VideoWriter."""

    def __init__(self, source: VideoSource, path: Path, fps: int = 30, codec: str = "mp4v"):
        self.source = source
        self.path = Path(path)
        self.fps = fps
        self.codec = codec
        self.frames = 0

        self._writer = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at: Optional[datetime] = None
        self._t0 = 0.0

    def start(self):
        cv2 = _import_cv2()
        size = (self.source.video_width, self.source.video_height)
        if size[0] <= 0 or size[1] <= 0:
            raise RuntimeError("Video source has no decoded frames")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._writer = cv2.VideoWriter(
            str(self.path), cv2.VideoWriter_fourcc(*self.codec), self.fps, size
        )
        if not self._writer.isOpened():
            raise RuntimeError(f"Could not open video writer for {self.path}")

        self._size = size
        self._started_at = datetime.utcnow()
        self._t0 = time.monotonic()
        self._thread = threading.Thread(target=self._run, name="video-recorder", daemon=True)
        self._thread.start()

    def _run(self):
        interval = 1.0 / max(1, self.fps)
        while not self._stop.is_set():
            frame = self.source.read_frame()
            if frame is not None and (frame.shape[1], frame.shape[0]) == self._size:
                self._writer.write(frame)
                self.frames += 1
            self._stop.wait(interval)

    def stop(self) -> RecordedChunk:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        if self._writer is not None:
            self._writer.release()
            self._writer = None

        return RecordedChunk(
            path=self.path,
            started_at=self._started_at or datetime.utcnow(),
            duration=time.monotonic() - self._t0,
            frames=self.frames,
        )


# ============================================================================
# Acquisition
# ============================================================================

@dataclass
class MediaSession:
    """The acquired camera + microphone pair."""
    video_stream: Optional[MediaStream] = None
    audio_stream: Optional[MediaStream] = None
    active: bool = False

    @property
    def video_track(self) -> Optional[MediaTrack]:
        tracks = self.video_stream.get_video_tracks() if self.video_stream else []
        return tracks[0] if tracks else None

    @property
    def audio_track(self) -> Optional[MediaTrack]:
        tracks = self.audio_stream.get_audio_tracks() if self.audio_stream else []
        return tracks[0] if tracks else None

    def live_tracks(self) -> List[MediaTrack]:
        tracks = []
        for stream in (self.video_stream, self.audio_stream):
            if stream is not None:
                tracks.extend(t for t in stream.get_tracks() if t.live)
        return tracks


class MediaAcquisition:
    """
    Acquires and releases the session's camera and microphone.

    Device errors never propagate: they land in `error` and the session
    stays inactive. There is no automatic retry.

    Example:
        >>> media = MediaAcquisition(LocalMediaDevices(), MediaConfig())
        >>> async with media:
        ...     detector = FaceDetector(media.video_source, cache)
    """

    def __init__(
        self,
        devices: Optional[MediaDevices] = None,
        config: Optional[MediaConfig] = None,
    ):
        self.devices = devices if devices is not None else LocalMediaDevices()
        self.config = config or MediaConfig()

        self.session = MediaSession()
        self.error: Optional[str] = None

        self.recorded_chunks: List[RecordedChunk] = []
        self._recorder: Optional[VideoRecorder] = None
        self._stop_hooks: List[Callable[[], None]] = []

    @property
    def active(self) -> bool:
        return self.session.active

    @property
    def is_recording(self) -> bool:
        return self._recorder is not None

    @property
    def video_source(self) -> Optional[VideoSource]:
        """Video track borrowed by the face detector."""
        return self.session.video_track if self.session.active else None

    def add_stop_hook(self, callback: Callable[[], None]):
        """Run `callback` when capture stops (e.g. a dependent audio consumer)."""
        self._stop_hooks.append(callback)

    async def start_capture(self) -> bool:
        """
        Request camera and microphone independently.

        Returns:
            True if both were acquired
        """
        if self.session.active:
            return True

        self.error = None
        results = await asyncio.gather(
            self.devices.get_user_media(self.config.video_constraints()),
            self.devices.get_user_media(self.config.audio_constraints()),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            # No partial activation
            for result in results:
                if isinstance(result, MediaStream):
                    result.stop()
            self.error = describe_media_error(failures[0])
            logger.error(f"❌ Media access failed: {self.error}")
            return False

        video_stream, audio_stream = results
        self.session = MediaSession(video_stream, audio_stream, active=True)
        logger.info("✅ Camera and microphone acquired")
        return True

    def stop_capture(self):
        """
        Stop every track and clear references. Safe to call repeatedly.

        Release failures are logged; the session is cleared regardless.
        """
        if self._recorder is not None:
            try:
                self.stop_recording()
            except Exception as e:
                self._recorder = None
                logger.error(f"❌ Failed to finish recording: {e}")

        for hook in self._stop_hooks:
            try:
                hook()
            except Exception as e:
                logger.error(f"❌ Stop hook failed: {e}")

        was_active = self.session.active
        streams = (self.session.video_stream, self.session.audio_stream)
        self.session = MediaSession()
        for stream in streams:
            if stream is not None:
                stream.stop()

        if was_active:
            logger.info("🛑 Camera and microphone released")

    def start_recording(self, path: Optional[str] = None) -> bool:
        """
        Record the video track to a file.

        Returns:
            True if recording started
        """
        if self._recorder is not None:
            return True
        source = self.video_source
        if source is None:
            self.error = "Cannot record: capture is not active."
            return False

        if path is None:
            stamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
            path = str(Path(self.config.recording_dir) / f"recording_{stamp}.mp4")

        recorder = VideoRecorder(source, Path(path), self.config.video_fps, self.config.recording_codec)
        try:
            recorder.start()
        except Exception as e:
            self.error = f"Failed to start recording: {e}"
            logger.error(f"❌ {self.error}")
            return False

        self._recorder = recorder
        logger.info(f"⏺️ Recording to {path}")
        return True

    def stop_recording(self) -> Optional[RecordedChunk]:
        if self._recorder is None:
            return None

        chunk = self._recorder.stop()
        self._recorder = None
        self.recorded_chunks.append(chunk)
        logger.info(f"⏹️ Recording saved: {chunk.path} ({chunk.frames} frames, {chunk.duration:.1f}s)")
        return chunk

    async def __aenter__(self) -> "MediaAcquisition":
        await self.start_capture()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.stop_capture()
