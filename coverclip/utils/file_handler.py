import asyncio
import logging
import secrets
import stat
import string
import time
from pathlib import Path
from typing import Iterable, Optional, Union

import aiofiles
import aiofiles.os
from fastapi import UploadFile

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CHUNK_SIZE = 1024 * 1024
SIZE_UNITS = ["B", "KB", "MB", "GB"]
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


def ensure_directory_exists(dir_path: PathLike) -> None:
    """
    Создает директорию (рекурсивно), если ее нет
    """
    Path(dir_path).mkdir(parents=True, exist_ok=True)


def generate_unique_filename(original_name: str, prefix: Optional[str] = None) -> str:
    """
    Генерирует уникальное имя файла: [prefix_]<ms>_<token>_<base><ext>

    Расширение исходного файла сохраняется, путь клиента отбрасывается.
    """
    name = Path(original_name).name
    extension = Path(name).suffix
    base_name = Path(name).stem

    timestamp = int(time.time() * 1000)
    token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(6))

    unique_name = f"{timestamp}_{token}_{base_name}{extension}"
    if prefix:
        unique_name = f"{prefix}_{unique_name}"
    return unique_name


async def save_upload_file(upload_file: UploadFile, destination: Path) -> Path:
    """
    Сохраняет загруженный файл на диск с поддержкой потоковой записи
    для больших файлов
    """
    try:
        async with aiofiles.open(destination, 'wb') as out_file:
            while content := await upload_file.read(CHUNK_SIZE):
                await out_file.write(content)
        return destination
    except Exception:
        cleanup_file(destination)
        raise


def cleanup_file(file_path: PathLike) -> None:
    """
    Удаляет файл если он существует
    """
    try:
        Path(file_path).unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Error cleaning up file {file_path}: {e}")


async def _remove_file(file_path: PathLike) -> None:
    try:
        await aiofiles.os.remove(file_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to delete file {file_path}: {e}")


async def cleanup_files(file_paths: Iterable[PathLike]) -> None:
    """
    Удаляет все переданные файлы параллельно.

    Отсутствующие файлы пропускаются, ошибки только логируются,
    чтобы один проблемный путь не мешал удалению остальных.
    """
    await asyncio.gather(*(_remove_file(path) for path in file_paths))


async def get_directory_size(dir_path: PathLike) -> int:
    """
    Рекурсивно считает размер директории в байтах (0 если ее нет)
    """
    try:
        entries = await aiofiles.os.listdir(dir_path)
    except (FileNotFoundError, NotADirectoryError):
        return 0

    total_size = 0
    for entry in entries:
        entry_path = Path(dir_path) / entry
        try:
            entry_stat = await aiofiles.os.stat(entry_path)
        except FileNotFoundError:
            continue

        if stat.S_ISDIR(entry_stat.st_mode):
            total_size += await get_directory_size(entry_path)
        else:
            total_size += entry_stat.st_size

    return total_size


async def count_files(dir_path: PathLike) -> int:
    """
    Количество обычных файлов в директории (рекурсивно)
    """
    path = Path(dir_path)
    if not path.is_dir():
        return 0
    return await asyncio.to_thread(lambda: sum(1 for f in path.rglob('*') if f.is_file()))


async def clean_old_files(dir_path: PathLike, max_age_ms: int) -> int:
    """
    Удаляет файлы верхнего уровня директории, измененные раньше now - max_age_ms

    Returns:
        количество удаленных файлов
    """
    try:
        entries = await aiofiles.os.listdir(dir_path)
    except (FileNotFoundError, NotADirectoryError):
        return 0

    deleted_count = 0
    now_ms = time.time() * 1000

    for entry in entries:
        file_path = Path(dir_path) / entry
        try:
            file_stat = await aiofiles.os.stat(file_path)
            file_age_ms = now_ms - file_stat.st_mtime * 1000

            if file_age_ms > max_age_ms and stat.S_ISREG(file_stat.st_mode):
                await aiofiles.os.remove(file_path)
                deleted_count += 1
                logger.info(f"Cleaned up old file: {entry}")
        except FileNotFoundError:
            # удален параллельно, пока шло сканирование
            continue
        except OSError as e:
            logger.error(f"Error processing file {file_path}: {e}")

    return deleted_count


def format_file_size(num_bytes: int) -> str:
    """
    Форматирует размер: 1536 -> "1.5 KB"
    """
    if num_bytes == 0:
        return "0 B"

    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.1f} {SIZE_UNITS[unit_index]}"
