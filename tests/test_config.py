"""Tests for settings validation and application startup."""
import pytest
from pydantic import ValidationError

from coverclip import main
from coverclip.config import Settings


@pytest.mark.parametrize("overrides", [
    {"video_size": "1080p"},
    {"video_size": "1920x"},
    {"audio_bitrate": "loud"},
    {"audio_bitrate": "192kbps"},
])
def test_bad_encoder_settings_fail_at_load(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_bad_encoder_settings_from_environment(monkeypatch):
    monkeypatch.setenv("VIDEO_SIZE", "1080p")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_custom_encoder_settings_are_accepted():
    settings = Settings(_env_file=None, video_size="1280x720", audio_bitrate="320k")

    assert settings.video_size == "1280x720"
    assert settings.audio_bitrate == "320k"


async def test_lifespan_starts_and_stops_cleanup(monkeypatch, settings, fake_encoder):
    started = []
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    monkeypatch.setattr(
        main.VideoProcessor,
        "start_cleanup_scheduler",
        lambda self: _record(started, self),
    )

    async with main.lifespan(main.app):
        assert len(started) == 1
        assert started[0].config.upload_dir == settings.upload_dir

    assert started[0].cleanup_task is None


async def _record(calls, processor):
    calls.append(processor)
