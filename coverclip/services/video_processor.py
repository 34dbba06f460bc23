import asyncio
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

from coverclip.config import EncoderConfig
from coverclip.models import VideoProcessingRequest, VideoProcessingResult
from coverclip.utils.file_handler import (
    clean_old_files,
    cleanup_file,
    count_files,
    ensure_directory_exists,
    format_file_size,
    get_directory_size,
)

logger = logging.getLogger(__name__)


def _last_line(output: Optional[str]) -> str:
    lines = [line.strip() for line in (output or "").splitlines() if line.strip()]
    return lines[-1] if lines else ""


class VideoProcessor:
    """
    Собирает MP4 из одного изображения и одной аудиодорожки через FFmpeg
    """

    def __init__(self, config: EncoderConfig):
        self.config = config
        self.cleanup_task: Optional[asyncio.Task] = None

    def build_command(self, request: VideoProcessingRequest) -> List[str]:
        """
        Формирует команду FFmpeg: зацикленный кадр + аудио -> mp4
        """
        return [
            self.config.ffmpeg_path,
            '-y',
            '-loop', '1',
            '-i', request.image_path,
            '-i', request.audio_path,
            '-c:v', request.video_codec,
            '-c:a', request.audio_codec,
            '-b:a', request.audio_bitrate,
            '-s', request.size,
            # без -shortest зацикленное изображение кодируется бесконечно
            '-shortest',
            '-f', 'mp4',
            request.output_path,
        ]

    async def process_video(self, request: VideoProcessingRequest) -> VideoProcessingResult:
        """
        Кодирует видео и возвращает ровно один результат.

        Кодирование идет в отдельном потоке, чтобы не блокировать event loop.
        Повторных попыток нет: решение о повторе принимает вызывающий.
        """
        image_path = Path(request.image_path)
        audio_path = Path(request.audio_path)
        output_path = Path(request.output_path)

        if not image_path.is_file():
            return VideoProcessingResult(
                success=False,
                error_message=f"Image file not found: {request.image_path}",
            )

        if not audio_path.is_file():
            return VideoProcessingResult(
                success=False,
                error_message=f"Audio file not found: {request.audio_path}",
            )

        ensure_directory_exists(output_path.parent)

        command = self.build_command(request)
        logger.info(f"Encoding {image_path.name} + {audio_path.name} -> {output_path}")
        logger.debug(f"FFmpeg command: {' '.join(command)}")

        error = await asyncio.to_thread(self._run_encoder, command)

        if error is None and not output_path.exists():
            error = "Encoder finished but produced no output file"

        if error is not None:
            logger.error(f"Failed to create {output_path.name}: {error}")
            cleanup_file(output_path)
            return VideoProcessingResult(success=False, error_message=error)

        logger.info(f"Successfully created {output_path.name}, size: {output_path.stat().st_size} bytes")
        return VideoProcessingResult(success=True, output_path=request.output_path)

    def _run_encoder(self, command: List[str]) -> Optional[str]:
        """
        Запускает FFmpeg; возвращает текст ошибки или None при успехе
        """
        timeout = self.config.timeout_seconds
        try:
            subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
            )
            return None
        except subprocess.CalledProcessError as e:
            logger.error(f"FFmpeg error: {e.stderr}")
            return _last_line(e.stderr) or f"ffmpeg exited with code {e.returncode}"
        except subprocess.TimeoutExpired:
            # subprocess.run уже убил процесс
            return f"Encoding timed out after {timeout:g}s"
        except FileNotFoundError:
            return f"Encoder not found: {self.config.ffmpeg_path}"
        except OSError as e:
            return f"Failed to start encoder: {e}"

    def check_encoder(self) -> Optional[str]:
        """
        Возвращает строку версии FFmpeg или None, если он не найден
        """
        ffmpeg_path = shutil.which(self.config.ffmpeg_path)
        if not ffmpeg_path:
            return None

        try:
            result = subprocess.run(
                [ffmpeg_path, '-version'],
                capture_output=True,
                text=True,
                timeout=5
            )
            return result.stdout.split('\n')[0] or ffmpeg_path
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Could not check FFmpeg version: {e}")
            return ffmpeg_path

    async def start_cleanup_scheduler(self):
        """
        Запускает фоновую задачу для периодической очистки
        """
        if self.cleanup_task is None:
            self.cleanup_task = asyncio.create_task(self._cleanup_scheduler())
            logger.info("Cleanup scheduler started")

    async def stop_cleanup_scheduler(self):
        if self.cleanup_task is None:
            return
        self.cleanup_task.cancel()
        try:
            await self.cleanup_task
        except asyncio.CancelledError:
            pass
        self.cleanup_task = None

    async def _cleanup_scheduler(self):
        """
        Периодически запускает очистку старых файлов
        """
        while True:
            try:
                await asyncio.sleep(self.config.cleanup_interval_seconds)

                logger.info("Running scheduled cleanup...")
                await self.cleanup_old_files(hours=self.config.cleanup_max_age_hours)

            except asyncio.CancelledError:
                logger.info("Cleanup scheduler cancelled")
                raise
            except Exception as e:
                logger.error(f"Error in cleanup scheduler: {str(e)}", exc_info=True)

    async def cleanup_old_files(self, hours: float = 24) -> Tuple[int, int]:
        """
        Удаляет файлы в директории загрузок старше заданного числа часов

        Returns:
            (количество удаленных файлов, освобождено байт)
        """
        upload_dir = self.config.upload_dir
        size_before = await get_directory_size(upload_dir)

        deleted_count = await clean_old_files(upload_dir, int(hours * 3600 * 1000))

        freed_space = max(size_before - await get_directory_size(upload_dir), 0)

        if deleted_count > 0:
            logger.info(f"Cleanup completed: removed {deleted_count} files, freed {format_file_size(freed_space)}")
        else:
            logger.info("Cleanup completed: no old files found")

        return deleted_count, freed_space

    async def get_storage_info(self) -> Dict:
        """
        Возвращает информацию о использовании дискового пространства
        """
        total_size = await get_directory_size(self.config.upload_dir)

        return {
            'total_size_bytes': total_size,
            'total_size': format_file_size(total_size),
            'file_count': await count_files(self.config.upload_dir),
        }
