"""Shared fixtures: sample media, isolated upload dir and a fake ffmpeg."""
import io
import struct
import subprocess
import wave
import zlib
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from coverclip.config import EncoderConfig, Settings, get_settings
from coverclip.main import app


def _png_chunk(tag: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(tag + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", crc)


@pytest.fixture
def png_bytes() -> bytes:
    """A valid 1x1 RGB PNG."""
    header = struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0)
    pixels = zlib.compress(b"\x00\xff\x00\x00")
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", pixels)
        + _png_chunk(b"IEND", b"")
    )


@pytest.fixture
def wav_bytes() -> bytes:
    """0.1s of mono 16-bit silence."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(44100)
        wav.writeframes(b"\x00\x00" * 4410)
    return buffer.getvalue()


@pytest.fixture
def upload_dir(tmp_path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def settings(upload_dir) -> Settings:
    return Settings(upload_dir=upload_dir, _env_file=None)


@pytest.fixture
def encoder_config(upload_dir) -> EncoderConfig:
    return EncoderConfig(ffmpeg_path="ffmpeg", timeout_seconds=30, upload_dir=upload_dir)


class FakeEncoder:
    """Stands in for subprocess.run: records commands and writes the output file."""

    def __init__(self):
        self.commands = []
        self.kwargs = []
        self.error = None

    def __call__(self, command, **kwargs):
        if command[-1] == "-version":
            return subprocess.CompletedProcess(command, 0, stdout="ffmpeg version fake\n", stderr="")
        self.commands.append(command)
        self.kwargs.append(kwargs)
        if self.error is not None:
            raise self.error
        Path(command[-1]).write_bytes(b"fake mp4 data")
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")


@pytest.fixture
def fake_encoder(monkeypatch) -> FakeEncoder:
    encoder = FakeEncoder()
    monkeypatch.setattr("coverclip.services.video_processor.subprocess.run", encoder)
    return encoder


@pytest.fixture
def client(settings, fake_encoder):
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
