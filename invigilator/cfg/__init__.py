"""
Invigilator Configuration Module

Pydantic-based configuration following best practices.
"""

from invigilator.cfg.config import (
    BaseConfig,
    MediaConfig,
    DetectorConfig,
    ClassifierConfig,
    LockdownConfig,
    LiveKitConfig,
    SessionConfig,
    Settings,
    get_settings,
)

__all__ = [
    "BaseConfig",
    "MediaConfig",
    "DetectorConfig",
    "ClassifierConfig",
    "LockdownConfig",
    "LiveKitConfig",
    "SessionConfig",
    "Settings",
    "get_settings",
]
