import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from coverclip.models import FileInfo, MediaType, ValidationResult

logger = logging.getLogger(__name__)

MB = 1024 * 1024

ALLOWED_IMAGE_TYPES = ['.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp']
ALLOWED_AUDIO_TYPES = ['.mp3', '.wav', '.aac', '.m4a', '.flac', '.ogg']

# Сигнатуры читаются из первых 12 байт файла
HEADER_SIZE = 12


def _starts_with(signature: bytes) -> Callable[[bytes], bool]:
    return lambda header: header.startswith(signature)


def _riff(form_type: bytes) -> Callable[[bytes], bool]:
    return lambda header: header[0:4] == b"RIFF" and header[8:12] == form_type


IMAGE_SIGNATURES: Dict[str, Callable[[bytes], bool]] = {
    'jpeg': _starts_with(b"\xFF\xD8\xFF"),
    'png': _starts_with(b"\x89PNG"),
    'gif': _starts_with(b"GIF"),
    'bmp': _starts_with(b"BM"),
    'webp': _riff(b"WEBP"),
}

AUDIO_SIGNATURES: Dict[str, Callable[[bytes], bool]] = {
    'wav': _riff(b"WAVE"),
    'mp3': _starts_with(b"\xFF\xFB"),
    'id3': _starts_with(b"ID3"),
    'flac': _starts_with(b"fLaC"),
    'ogg': _starts_with(b"OggS"),
    'aac': lambda header: header[0:2] in (b"\xFF\xF1", b"\xFF\xF9"),
    'm4a': lambda header: header[4:8] == b"ftyp",
}


def _read_header(file_path: Union[str, Path]) -> Optional[bytes]:
    try:
        with open(file_path, 'rb') as f:
            return f.read(HEADER_SIZE)
    except OSError:
        return None


def _matches_any(file_path: Union[str, Path], signatures: Dict[str, Callable[[bytes], bool]]) -> bool:
    header = _read_header(file_path)
    if not header:
        return False
    return any(check(header) for check in signatures.values())


class FileValidator:
    """
    Проверяет загруженные изображения и аудио: существование, размер,
    расширение и (опционально) сигнатуру содержимого.

    Сигнатура определяет класс файла, расширение должно входить в
    белый список того же класса. Файл .jpg с содержимым PNG считается
    изображением, а .png с содержимым WAV отклоняется.
    """

    def __init__(
        self,
        max_image_size: int = 10 * MB,
        max_audio_size: int = 50 * MB,
        verify_signature: bool = True,
    ):
        self.max_image_size = max_image_size
        self.max_audio_size = max_audio_size
        self.verify_signature = verify_signature

    def validate_image(self, file_path: Union[str, Path]) -> ValidationResult:
        return self._validate(
            Path(file_path),
            MediaType.IMAGE,
            self.max_image_size,
            ALLOWED_IMAGE_TYPES,
            is_image_file,
        )

    def validate_audio(self, file_path: Union[str, Path]) -> ValidationResult:
        return self._validate(
            Path(file_path),
            MediaType.AUDIO,
            self.max_audio_size,
            ALLOWED_AUDIO_TYPES,
            is_audio_file,
        )

    def _validate(
        self,
        file_path: Path,
        media_type: MediaType,
        max_size: int,
        allowed_types: List[str],
        signature_check: Callable[[Path], bool],
    ) -> ValidationResult:
        label = media_type.value.capitalize()

        try:
            if not file_path.is_file():
                return ValidationResult(is_valid=False, error_message="File does not exist")

            size = file_path.stat().st_size
            extension = file_path.suffix.lower()

            if size > max_size:
                return ValidationResult(
                    is_valid=False,
                    error_message=f"{label} file too large. Maximum size: {max_size / MB:g}MB",
                )

            if extension not in allowed_types:
                return ValidationResult(
                    is_valid=False,
                    error_message=f"Invalid {media_type.value} format. Allowed types: {', '.join(allowed_types)}",
                )

            if self.verify_signature and not signature_check(file_path):
                logger.warning(f"Signature mismatch for {file_path.name} (claimed {media_type.value})")
                return ValidationResult(
                    is_valid=False,
                    error_message=f"File content does not match a supported {media_type.value} format",
                )

            return ValidationResult(
                is_valid=True,
                file_info=FileInfo(size_bytes=size, media_type=media_type, extension=extension),
            )

        except OSError as e:
            logger.error(f"Error validating {file_path}: {e}")
            return ValidationResult(is_valid=False, error_message=f"File validation error: {e}")


def is_image_file(file_path: Union[str, Path]) -> bool:
    """
    Проверяет магические байты изображения (JPEG, PNG, GIF, BMP, WEBP)
    """
    return _matches_any(file_path, IMAGE_SIGNATURES)


def is_audio_file(file_path: Union[str, Path]) -> bool:
    """
    Проверяет магические байты аудио (WAV, MP3, FLAC, OGG, AAC, M4A)
    """
    return _matches_any(file_path, AUDIO_SIGNATURES)


def sniff_media_type(file_path: Union[str, Path]) -> Optional[MediaType]:
    if is_image_file(file_path):
        return MediaType.IMAGE
    if is_audio_file(file_path):
        return MediaType.AUDIO
    return None


_default_validator = FileValidator()


def validate_image(file_path: Union[str, Path]) -> ValidationResult:
    return _default_validator.validate_image(file_path)


def validate_audio(file_path: Union[str, Path]) -> ValidationResult:
    return _default_validator.validate_audio(file_path)
