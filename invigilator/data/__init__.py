"""
Invigilator Data Module

Camera/microphone acquisition, recording, and LiveKit violation publishing.
"""

from invigilator.data.media import (
    CameraTrack,
    LocalMediaDevices,
    MediaAcquisition,
    MediaDeviceError,
    MediaDevices,
    MediaSession,
    MediaStream,
    MediaTrack,
    MicrophoneTrack,
    RecordedChunk,
    VideoRecorder,
    VideoSource,
    describe_media_error,
)
from invigilator.data.publisher import ViolationPublisher, connect_room

__all__ = [
    # Media acquisition
    "CameraTrack",
    "LocalMediaDevices",
    "MediaAcquisition",
    "MediaDeviceError",
    "MediaDevices",
    "MediaSession",
    "MediaStream",
    "MediaTrack",
    "MicrophoneTrack",
    "RecordedChunk",
    "VideoRecorder",
    "VideoSource",
    "describe_media_error",
    # LiveKit integration
    "ViolationPublisher",
    "connect_room",
]
