import pytest
from pydantic import ValidationError

from invigilator.cfg import ClassifierConfig, DetectorConfig, MediaConfig, Settings


def test_defaults():
    config = ClassifierConfig()

    assert config.debounce_frames == 1
    assert config.smooth_frames == 1
    assert config.violation_cooldown_ms == 2500
    assert DetectorConfig().interval_seconds == pytest.approx(0.3)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DETECTION_INTERVAL_MS", "500")
    monkeypatch.setenv("MAX_VIOLATIONS", "4")
    monkeypatch.setenv("BLOCK_CLIPBOARD", "false")

    session = Settings(_env_file=None).to_session_config()

    assert session.detector.detection_interval_ms == 500
    assert session.classifier.max_violations == 4
    assert session.lockdown.block_clipboard is False


def test_media_constraints():
    config = MediaConfig(camera_index=2, video_width=640, video_height=480)

    video = config.video_constraints()["video"]
    audio = config.audio_constraints()["audio"]

    assert video["device"] == 2
    assert (video["width"], video["height"]) == (640, 480)
    assert video["facing_mode"] == "user"
    assert audio["echo_cancellation"] and audio["noise_suppression"] and audio["auto_gain_control"]


def test_debounce_must_be_positive():
    with pytest.raises(ValidationError):
        ClassifierConfig(debounce_frames=0)
