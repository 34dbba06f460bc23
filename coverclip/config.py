from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class EncoderConfig(BaseModel, frozen=True):
    """Settings handed to a VideoProcessor at construction."""

    ffmpeg_path: str = "ffmpeg"
    timeout_seconds: float = 300
    upload_dir: Path = Path("./uploads")
    cleanup_max_age_hours: int = 24
    cleanup_interval_seconds: int = 3600


class Settings(BaseSettings):
    upload_dir: Path = Path("./uploads")

    # Encoder
    ffmpeg_path: str = "ffmpeg"
    encoder_timeout_seconds: float = 300
    video_size: str = Field(default="1920x1080", pattern=r"^\d+x\d+$")
    audio_codec: str = "aac"
    video_codec: str = "libx264"
    audio_bitrate: str = Field(default="192k", pattern=r"^\d+[kKmM]?$")

    # Validation
    max_image_size_mb: int = 10
    max_audio_size_mb: int = 50
    verify_signatures: bool = True

    # Cleanup
    cleanup_max_age_hours: int = 24  # uploads older than this are purged
    cleanup_interval_seconds: int = 3600

    log_level: str = "INFO"
    backend_port: int = 8000

    class Config:
        env_file = ".env"

    def encoder_config(self) -> EncoderConfig:
        return EncoderConfig(
            ffmpeg_path=self.ffmpeg_path,
            timeout_seconds=self.encoder_timeout_seconds,
            upload_dir=self.upload_dir,
            cleanup_max_age_hours=self.cleanup_max_age_hours,
            cleanup_interval_seconds=self.cleanup_interval_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
