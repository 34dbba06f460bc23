from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class MediaType(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"


class UploadedFile(BaseModel):
    """
    Upload written to disk for the duration of one request
    """
    path: str
    declared_name: str
    size_bytes: int
    extension: str


class FileInfo(BaseModel):
    size_bytes: int
    media_type: MediaType
    extension: str


class ValidationResult(BaseModel):
    is_valid: bool
    error_message: Optional[str] = None
    file_info: Optional[FileInfo] = None


class VideoProcessingRequest(BaseModel, frozen=True):
    """
    One still image plus one audio track to be muxed into an MP4
    """
    image_path: str
    audio_path: str
    output_path: str
    size: str = Field(default="1920x1080", pattern=r"^\d+x\d+$")
    audio_codec: str = "aac"
    video_codec: str = "libx264"
    audio_bitrate: str = Field(default="192k", pattern=r"^\d+[kKmM]?$")


class VideoProcessingResult(BaseModel, frozen=True):
    success: bool
    output_path: Optional[str] = None
    error_message: Optional[str] = None


class UploadResponse(BaseModel):
    message: str
    path: str


class CleanupResponse(BaseModel):
    message: str
    files_removed: int
    space_freed: str


class StorageInfo(BaseModel):
    total_size_bytes: int
    total_size: str
    file_count: int


class HealthStatus(BaseModel):
    status: str
    encoder_available: bool
    storage_used: str
    file_count: int
