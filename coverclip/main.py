from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import asyncio
import logging

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse

from coverclip.config import Settings, get_settings
from coverclip.exceptions import (
    CoverclipError,
    EncodingError,
    FileValidationError,
    InputMissingError,
)
from coverclip.models import (
    CleanupResponse,
    HealthStatus,
    MediaType,
    StorageInfo,
    UploadedFile,
    UploadResponse,
    VideoProcessingRequest,
)
from coverclip.services.file_validator import FileValidator
from coverclip.services.video_processor import VideoProcessor
from coverclip.utils.file_handler import (
    cleanup_files,
    ensure_directory_exists,
    format_file_size,
    generate_unique_filename,
    save_upload_file,
)

VERSION = "1.0.0"

logging.basicConfig(level=get_settings().log_level.upper())
logger = logging.getLogger(__name__)


def get_processor(settings: Settings = Depends(get_settings)) -> VideoProcessor:
    return VideoProcessor(settings.encoder_config())


def get_validator(settings: Settings = Depends(get_settings)) -> FileValidator:
    return FileValidator(
        max_image_size=settings.max_image_size_mb * 1024 * 1024,
        max_audio_size=settings.max_audio_size_mb * 1024 * 1024,
        verify_signature=settings.verify_signatures,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Инициализация при запуске и остановка планировщика очистки
    """
    settings = get_settings()
    ensure_directory_exists(settings.upload_dir)

    logger.info("🚀 Image+Audio to Video API started")
    logger.info(f"📁 Upload directory: {settings.upload_dir}")
    logger.info(f"⏰ Auto-cleanup after: {settings.cleanup_max_age_hours} hours")

    processor = VideoProcessor(settings.encoder_config())
    version_line = await asyncio.to_thread(processor.check_encoder)
    if version_line:
        logger.info(f"📹 {version_line}")
    else:
        logger.error(f"❌ FFmpeg NOT FOUND at '{settings.ffmpeg_path}'! Please install FFmpeg")

    await processor.start_cleanup_scheduler()

    yield

    logger.info("👋 Shutting down Image+Audio to Video API")
    await processor.stop_cleanup_scheduler()


app = FastAPI(
    title="Image+Audio to Video API",
    description="Combines a still image and an audio track into an MP4 video",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CoverclipError)
async def coverclip_error_handler(request: Request, exc: CoverclipError):
    return PlainTextResponse(str(exc), status_code=exc.status_code)


@app.get("/")
async def root():
    """
    Проверка работы API
    """
    return {
        "message": "Image+Audio to Video API",
        "version": VERSION,
        "status": "running"
    }


async def _store_upload(upload: UploadFile, media_type: MediaType, upload_dir: Path) -> UploadedFile:
    declared_name = upload.filename or media_type.value
    destination = upload_dir / generate_unique_filename(declared_name, prefix=media_type.value)

    await save_upload_file(upload, destination)

    return UploadedFile(
        path=str(destination),
        declared_name=declared_name,
        size_bytes=destination.stat().st_size,
        extension=destination.suffix.lower(),
    )


@app.post("/api/upload", response_model=UploadResponse)
async def upload_files(
    image: Optional[UploadFile] = File(None),
    audio: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    validator: FileValidator = Depends(get_validator),
    processor: VideoProcessor = Depends(get_processor),
):
    """
    Принимает изображение и аудио, собирает из них MP4
    """
    if image is None and audio is None:
        raise InputMissingError("No files were uploaded.")
    if image is None:
        raise InputMissingError("Image file is required.")
    if audio is None:
        raise InputMissingError("Audio file is required.")

    logger.info(f"Received upload request: image={image.filename}, audio={audio.filename}")

    ensure_directory_exists(settings.upload_dir)
    stored_paths = []

    try:
        try:
            image_file = await _store_upload(image, MediaType.IMAGE, settings.upload_dir)
            stored_paths.append(image_file.path)
            audio_file = await _store_upload(audio, MediaType.AUDIO, settings.upload_dir)
            stored_paths.append(audio_file.path)
        except OSError as e:
            logger.error(f"Upload error: {str(e)}", exc_info=True)
            raise CoverclipError("Failed to store uploaded files") from e

        logger.info(
            f"Files saved: {image_file.path} ({format_file_size(image_file.size_bytes)}), "
            f"{audio_file.path} ({format_file_size(audio_file.size_bytes)})"
        )

        image_validation = validator.validate_image(image_file.path)
        if not image_validation.is_valid:
            raise FileValidationError(MediaType.IMAGE, image_validation.error_message)

        audio_validation = validator.validate_audio(audio_file.path)
        if not audio_validation.is_valid:
            raise FileValidationError(MediaType.AUDIO, audio_validation.error_message)

        output_path = settings.upload_dir / generate_unique_filename("output.mp4")
        request = VideoProcessingRequest(
            image_path=image_file.path,
            audio_path=audio_file.path,
            output_path=str(output_path),
            size=settings.video_size,
            audio_codec=settings.audio_codec,
            video_codec=settings.video_codec,
            audio_bitrate=settings.audio_bitrate,
        )

        result = await processor.process_video(request)

    except FileValidationError as e:
        logger.warning(str(e))
        raise
    finally:
        await cleanup_files(stored_paths)

    if not result.success:
        raise EncodingError(result.error_message or "unknown encoder error")

    return UploadResponse(message="Video generated successfully!", path=result.output_path)


@app.get("/api/download/{filename}")
async def download_file(filename: str, settings: Settings = Depends(get_settings)):
    """
    Скачивает готовое видео
    """
    if Path(filename).name != filename or Path(filename).suffix.lower() != ".mp4":
        raise HTTPException(status_code=404, detail="File not found")

    file_path = settings.upload_dir / filename
    if not file_path.is_file():
        logger.error(f"File not found: {file_path}")
        raise HTTPException(status_code=404, detail="File not found")

    logger.info(f"Serving file: {file_path}, size: {file_path.stat().st_size}")

    return FileResponse(path=file_path, filename=filename, media_type="video/mp4")


@app.post("/api/cleanup", response_model=CleanupResponse)
async def manual_cleanup(
    hours: float = Query(24, ge=0),
    processor: VideoProcessor = Depends(get_processor),
):
    """
    Ручной запуск очистки старых файлов
    """
    logger.info(f"Manual cleanup triggered for files older than {hours} hours")
    files_removed, freed_space = await processor.cleanup_old_files(hours)

    return CleanupResponse(
        message="Cleanup completed",
        files_removed=files_removed,
        space_freed=format_file_size(freed_space),
    )


@app.get("/api/storage", response_model=StorageInfo)
async def get_storage_info(processor: VideoProcessor = Depends(get_processor)):
    """
    Получает информацию о использовании дискового пространства
    """
    return StorageInfo(**await processor.get_storage_info())


@app.get("/api/health", response_model=HealthStatus)
async def health_check(processor: VideoProcessor = Depends(get_processor)):
    """
    Проверка здоровья сервиса
    """
    storage_info = await processor.get_storage_info()
    encoder_version = await asyncio.to_thread(processor.check_encoder)

    return HealthStatus(
        status="healthy",
        encoder_available=encoder_version is not None,
        storage_used=storage_info['total_size'],
        file_count=storage_info['file_count'],
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().backend_port)
