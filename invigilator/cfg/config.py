from __future__ import annotations
"""
Invigilator Configuration Classes

Pydantic-based configuration with validation and defaults.
Single source of truth for all configuration values.
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


# ============================================================================
# Constants - Single source of truth for default values
# ============================================================================

# Camera defaults (ideal constraints, front-facing)
DEFAULT_CAMERA_INDEX = 0
DEFAULT_VIDEO_WIDTH = 1280
DEFAULT_VIDEO_HEIGHT = 720
DEFAULT_VIDEO_FPS = 30
DEFAULT_FACING_MODE = "user"

# Microphone defaults
DEFAULT_AUDIO_SAMPLE_RATE = 44100
DEFAULT_AUDIO_CHANNELS = 1

# Recording
DEFAULT_RECORDING_DIR = "recordings"
DEFAULT_RECORDING_CODEC = "mp4v"

# Face detection
DEFAULT_DETECTION_INTERVAL_MS = 300
DEFAULT_FACE_CONFIDENCE = 0.35
DEFAULT_FACE_MODEL_SELECTION = 0  # 0 = short-range BlazeFace

# Classification heuristics
DEFAULT_MIN_FACE_SIZE = 12.0  # % of frame height
DEFAULT_MAX_FACE_SIZE = 75.0  # % of frame height
DEFAULT_LOOKING_AWAY_THRESHOLD = 0.3
DEFAULT_POOR_LIGHTING_THRESHOLD = 0.5
DEFAULT_DEBOUNCE_FRAMES = 1
DEFAULT_SMOOTH_FRAMES = 1
DEFAULT_VIOLATION_COOLDOWN_MS = 2500
DEFAULT_MAX_VIOLATIONS = 10

# Lockdown
DEFAULT_LOCKED_KEYS = ["Escape"]

# API
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8001

# LiveKit defaults
DEFAULT_LIVEKIT_URL = "ws://localhost:7880"
DEFAULT_LIVEKIT_API_KEY = "devkey"
DEFAULT_LIVEKIT_API_SECRET = "secret"
DEFAULT_PUBLISH_COOLDOWN = 5.0


# ============================================================================
# Base Configuration
# ============================================================================

class BaseConfig(BaseModel):
    """Base configuration class for all invigilator configs."""

    verbose: bool = Field(default=True, description="Enable verbose output")

    class Config:
        extra = "allow"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.model_dump()})"


# ============================================================================
# Component Configurations (derived from Settings)
# ============================================================================

class MediaConfig(BaseConfig):
    """Configuration for camera and microphone acquisition."""

    # Video constraints
    camera_index: int = Field(default=DEFAULT_CAMERA_INDEX, description="OpenCV camera device index")
    video_width: int = Field(default=DEFAULT_VIDEO_WIDTH, description="Ideal capture width")
    video_height: int = Field(default=DEFAULT_VIDEO_HEIGHT, description="Ideal capture height")
    video_fps: int = Field(default=DEFAULT_VIDEO_FPS, description="Ideal capture frame rate")
    facing_mode: str = Field(default=DEFAULT_FACING_MODE, description="Camera facing mode")

    # Audio constraints
    audio_sample_rate: int = Field(default=DEFAULT_AUDIO_SAMPLE_RATE, description="Microphone sample rate")
    audio_channels: int = Field(default=DEFAULT_AUDIO_CHANNELS, description="Microphone channel count")
    echo_cancellation: bool = Field(default=True, description="Request echo cancellation")
    noise_suppression: bool = Field(default=True, description="Request noise suppression")
    auto_gain_control: bool = Field(default=True, description="Request automatic gain control")

    # Recording
    recording_dir: str = Field(default=DEFAULT_RECORDING_DIR, description="Directory for recorded video")
    recording_codec: str = Field(default=DEFAULT_RECORDING_CODEC, description="FourCC codec for recordings")

    def video_constraints(self) -> dict:
        """Constraints passed to the device layer for the camera."""
        return {
            "video": {
                "device": self.camera_index,
                "width": self.video_width,
                "height": self.video_height,
                "frame_rate": self.video_fps,
                "facing_mode": self.facing_mode,
            },
        }

    def audio_constraints(self) -> dict:
        """Constraints passed to the device layer for the microphone."""
        return {
            "audio": {
                "echo_cancellation": self.echo_cancellation,
                "noise_suppression": self.noise_suppression,
                "auto_gain_control": self.auto_gain_control,
                "sample_rate": self.audio_sample_rate,
                "channels": self.audio_channels,
            },
        }


class DetectorConfig(BaseConfig):
    """Configuration for the face detection loop."""

    detection_interval_ms: int = Field(default=DEFAULT_DETECTION_INTERVAL_MS, description="Poll interval between ticks")
    face_confidence: float = Field(default=DEFAULT_FACE_CONFIDENCE, description="Minimum face probability")
    model_selection: int = Field(default=DEFAULT_FACE_MODEL_SELECTION, description="MediaPipe model (0 short, 1 full range)")

    @property
    def interval_seconds(self) -> float:
        return self.detection_interval_ms / 1000.0


class ClassifierConfig(BaseConfig):
    """Configuration for violation classification."""

    # Geometric heuristics
    min_face_size: float = Field(default=DEFAULT_MIN_FACE_SIZE, description="Face height % below which face is too far")
    max_face_size: float = Field(default=DEFAULT_MAX_FACE_SIZE, description="Face height % above which face is too close")
    looking_away_threshold: float = Field(default=DEFAULT_LOOKING_AWAY_THRESHOLD, description="Centre offset ratio for looking away")
    poor_lighting_threshold: float = Field(default=DEFAULT_POOR_LIGHTING_THRESHOLD, description="Face probability below which lighting is poor")

    # Temporal behaviour (1 = memoryless)
    debounce_frames: int = Field(default=DEFAULT_DEBOUNCE_FRAMES, ge=1, description="Consecutive ticks before a new result is shown")
    smooth_frames: int = Field(default=DEFAULT_SMOOTH_FRAMES, ge=1, description="Frames used to smooth face count")
    violation_cooldown_ms: int = Field(default=DEFAULT_VIOLATION_COOLDOWN_MS, ge=0, description="Cooldown before logging same violation again")

    # Sink
    max_violations: int = Field(default=DEFAULT_MAX_VIOLATIONS, ge=1, description="Violation count that fires the threshold callback")


class LockdownConfig(BaseConfig):
    """Configuration for the lockdown controller."""

    lock_keyboard: bool = Field(default=True, description="Request the native keyboard lock")
    locked_keys: List[str] = Field(default_factory=lambda: list(DEFAULT_LOCKED_KEYS), description="Keys passed to keyboard lock")
    block_clipboard: bool = Field(default=True, description="Suppress copy, cut and paste")
    block_gestures: bool = Field(default=True, description="Suppress multi-touch and pinch-zoom gestures")
    watch_fullscreen: bool = Field(default=True, description="Record fullscreen exits")
    watch_visibility: bool = Field(default=True, description="Record tab switches")


class LiveKitConfig(BaseConfig):
    """Configuration for publishing violations over LiveKit."""

    url: str = Field(default=DEFAULT_LIVEKIT_URL, description="LiveKit server URL")
    api_key: str = Field(default=DEFAULT_LIVEKIT_API_KEY, description="LiveKit API key")
    api_secret: str = Field(default=DEFAULT_LIVEKIT_API_SECRET, description="LiveKit API secret")

    # Publisher settings
    data_topic: str = Field(default="proctoring", description="Data channel topic for violations")
    status_topic: str = Field(default="proctoring_status", description="Status update topic")
    cooldown_seconds: float = Field(default=DEFAULT_PUBLISH_COOLDOWN, description="Minimum seconds between same violation type")


class SessionConfig(BaseConfig):
    """Configuration bundle for a full proctoring session."""

    media: MediaConfig = Field(default_factory=MediaConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    lockdown: LockdownConfig = Field(default_factory=LockdownConfig)


# ============================================================================
# Main Settings (Single Source of Truth with Environment Variable Support)
# ============================================================================

class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    This is the SINGLE SOURCE OF TRUTH for all configuration.
    All component configs are derived from these settings.

    Field names map to upper-case environment variables
    (e.g. DETECTION_INTERVAL_MS, MAX_VIOLATIONS).
    """

    # Camera
    camera_index: int = DEFAULT_CAMERA_INDEX
    video_width: int = DEFAULT_VIDEO_WIDTH
    video_height: int = DEFAULT_VIDEO_HEIGHT
    video_fps: int = DEFAULT_VIDEO_FPS

    # Microphone
    audio_sample_rate: int = DEFAULT_AUDIO_SAMPLE_RATE

    # Recording
    recording_dir: str = DEFAULT_RECORDING_DIR

    # Detection
    detection_interval_ms: int = DEFAULT_DETECTION_INTERVAL_MS
    face_confidence: float = DEFAULT_FACE_CONFIDENCE
    face_model_selection: int = DEFAULT_FACE_MODEL_SELECTION

    # Classification
    min_face_size: float = DEFAULT_MIN_FACE_SIZE
    max_face_size: float = DEFAULT_MAX_FACE_SIZE
    looking_away_threshold: float = DEFAULT_LOOKING_AWAY_THRESHOLD
    poor_lighting_threshold: float = DEFAULT_POOR_LIGHTING_THRESHOLD
    debounce_frames: int = DEFAULT_DEBOUNCE_FRAMES
    smooth_frames: int = DEFAULT_SMOOTH_FRAMES
    violation_cooldown_ms: int = DEFAULT_VIOLATION_COOLDOWN_MS
    max_violations: int = DEFAULT_MAX_VIOLATIONS

    # Lockdown
    lock_keyboard: bool = True
    block_clipboard: bool = True
    block_gestures: bool = True

    # API
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT

    # LiveKit
    livekit_url: str = DEFAULT_LIVEKIT_URL
    livekit_api_key: str = DEFAULT_LIVEKIT_API_KEY
    livekit_api_secret: str = DEFAULT_LIVEKIT_API_SECRET
    livekit_room: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def to_media_config(self) -> MediaConfig:
        """Convert settings to MediaConfig."""
        return MediaConfig(
            camera_index=self.camera_index,
            video_width=self.video_width,
            video_height=self.video_height,
            video_fps=self.video_fps,
            audio_sample_rate=self.audio_sample_rate,
            recording_dir=self.recording_dir,
        )

    def to_detector_config(self) -> DetectorConfig:
        """Convert settings to DetectorConfig."""
        return DetectorConfig(
            detection_interval_ms=self.detection_interval_ms,
            face_confidence=self.face_confidence,
            model_selection=self.face_model_selection,
        )

    def to_classifier_config(self) -> ClassifierConfig:
        """Convert settings to ClassifierConfig."""
        return ClassifierConfig(
            min_face_size=self.min_face_size,
            max_face_size=self.max_face_size,
            looking_away_threshold=self.looking_away_threshold,
            poor_lighting_threshold=self.poor_lighting_threshold,
            debounce_frames=self.debounce_frames,
            smooth_frames=self.smooth_frames,
            violation_cooldown_ms=self.violation_cooldown_ms,
            max_violations=self.max_violations,
        )

    def to_lockdown_config(self) -> LockdownConfig:
        """Convert settings to LockdownConfig."""
        return LockdownConfig(
            lock_keyboard=self.lock_keyboard,
            block_clipboard=self.block_clipboard,
            block_gestures=self.block_gestures,
        )

    def to_livekit_config(self) -> LiveKitConfig:
        """Convert settings to LiveKitConfig."""
        return LiveKitConfig(
            url=self.livekit_url,
            api_key=self.livekit_api_key,
            api_secret=self.livekit_api_secret,
        )

    def to_session_config(self) -> SessionConfig:
        """Bundle every component config for a session."""
        return SessionConfig(
            media=self.to_media_config(),
            detector=self.to_detector_config(),
            classifier=self.to_classifier_config(),
            lockdown=self.to_lockdown_config(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
