"""Test configuration and fixtures for cl_media_convert.

This module provides:
- Pytest configuration (markers, optional dependency checks)
- Synthetic image fixtures generated with Pillow
- In-memory record sink and recording broadcaster
- Storage, runner and API client fixtures
"""

import json
from collections.abc import Callable
from io import BytesIO
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from PIL import ExifTags, Image, ImageDraw

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requires_heif: requires pillow-heif to be installed",
    )


def pytest_runtest_setup(item):
    """Skip HEIF tests when no HEIF writer is registered."""
    if item.get_closest_marker("requires_heif"):
        import cl_media_convert.pipeline.decoder  # noqa: F401  registers the opener

        Image.init()
        if "HEIF" not in Image.SAVE:
            pytest.skip("pillow-heif not installed. Install: pip install 'cl-media-convert[heif]'")


# ============================================================================
# Synthetic Media
# ============================================================================

ImageFactory = Callable[..., bytes]


def draw_test_pattern(size: tuple[int, int] = (400, 300), mode: str = "RGB") -> Image.Image:
    """Deterministic gradient with a grid and a circle."""
    width, height = size
    background = (73, 109, 137, 255) if mode == "RGBA" else (73, 109, 137)
    img = Image.new(mode, size, color=background)
    draw = ImageDraw.Draw(img)

    for i in range(0, width, 50):
        draw.line([(i, 0), (i, height)], fill=(255, 255, 255), width=2)
    for i in range(0, height, 50):
        draw.line([(0, i), (width, i)], fill=(255, 255, 255), width=2)

    draw.ellipse(
        [width // 4, height // 4, 3 * width // 4, 3 * height // 4], fill=(200, 100, 100)
    )
    return img


@pytest.fixture
def make_pattern() -> Callable[..., Image.Image]:
    """Factory returning synthetic Pillow images."""
    return draw_test_pattern


@pytest.fixture
def make_image() -> ImageFactory:
    """Factory returning encoded synthetic images."""

    def _make(
        fmt: str = "PNG",
        size: tuple[int, int] = (400, 300),
        mode: str = "RGB",
        **save_kwargs: Any,
    ) -> bytes:
        img = draw_test_pattern(size, mode)
        buffer = BytesIO()
        img.save(buffer, format=fmt, **save_kwargs)
        return buffer.getvalue()

    return _make


@pytest.fixture
def png_bytes(make_image: ImageFactory) -> bytes:
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes(make_image: ImageFactory) -> bytes:
    return make_image("JPEG", quality=85)


def build_camera_exif(*, with_gps: bool = True, orientation: int = 1) -> Image.Exif:
    exif = Image.Exif()
    exif[ExifTags.Base.Make] = "TestCam"
    exif[ExifTags.Base.Model] = "Model X"
    exif[ExifTags.Base.Software] = "cl-media-convert tests"
    exif[ExifTags.Base.Orientation] = orientation
    exif[ExifTags.IFD.Exif] = {
        ExifTags.Base.DateTimeOriginal: "2024:05:01 10:20:30",
        ExifTags.Base.ISOSpeedRatings: 200,
    }
    if with_gps:
        exif[ExifTags.IFD.GPSInfo] = {
            ExifTags.GPS.GPSLatitudeRef: "N",
            ExifTags.GPS.GPSLatitude: (37.0, 46.0, 30.0),
            ExifTags.GPS.GPSLongitudeRef: "W",
            ExifTags.GPS.GPSLongitude: (122.0, 25.0, 12.0),
        }
    return exif


@pytest.fixture
def gps_jpeg_bytes() -> bytes:
    """JPEG carrying camera EXIF and a GPS block."""
    buffer = BytesIO()
    draw_test_pattern().save(buffer, format="JPEG", quality=90, exif=build_camera_exif())
    return buffer.getvalue()


@pytest.fixture
def plain_jpeg_bytes() -> bytes:
    """JPEG carrying camera EXIF without any GPS data."""
    buffer = BytesIO()
    exif = build_camera_exif(with_gps=False)
    draw_test_pattern().save(buffer, format="JPEG", quality=90, exif=exif)
    return buffer.getvalue()


@pytest.fixture
def rotated_jpeg_bytes() -> bytes:
    """400x300 pixels stored with Orientation=6 (display as 300x400)."""
    buffer = BytesIO()
    exif = build_camera_exif(with_gps=False, orientation=6)
    draw_test_pattern().save(buffer, format="JPEG", quality=90, exif=exif)
    return buffer.getvalue()


# ============================================================================
# Mock Service Fixtures
# ============================================================================


@pytest.fixture
def record_sink():
    """Provide in-memory conversion record sink for testing."""
    from cl_media_convert.common.record_sink import ConversionRecordSink
    from cl_media_convert.common.schema_batch import ConversionRecord

    class InMemoryConversionRecordSink(ConversionRecordSink):
        """In-memory implementation for testing."""

        def __init__(self):
            self.records: list[ConversionRecord] = []

        def append(self, record: ConversionRecord) -> None:
            self.records.append(record)

    return InMemoryConversionRecordSink()


@pytest.fixture
def broadcaster():
    """Provide a broadcaster that records every published event."""
    from cl_media_convert.utils.mqtt import NoOpBroadcaster

    class RecordingBroadcaster(NoOpBroadcaster):
        def __init__(self):
            super().__init__()
            self.messages: list[tuple[str, dict[str, Any]]] = []

        def publish_event(self, *, topic: str, payload: str, qos: int = 1) -> bool:
            self.messages.append((topic, json.loads(payload)))
            return True

        @property
        def events(self) -> list[str]:
            return [payload["event"] for _, payload in self.messages]

    return RecordingBroadcaster()


@pytest.fixture
def media_storage(tmp_path: Path):
    """Provide local storage rooted in the test's tmp_path."""
    from cl_media_convert.common.file_storage_impl import LocalFileStorage

    return LocalFileStorage(base_dir=tmp_path / "media")


@pytest.fixture
def stage_inputs(media_storage):
    """Write raw inputs into a batch directory and describe them as InputFiles."""
    from cl_media_convert.common.schema_batch import InputFile

    def _stage(batch_id: str, items: list[tuple[str, bytes]]) -> list[InputFile]:
        media_storage.create_directory(batch_id)
        files: list[InputFile] = []
        for index, (name, data) in enumerate(items):
            relative_path = f"{index:03d}_{name}"
            media_storage.resolve_path(batch_id, relative_path).write_bytes(data)
            files.append(
                InputFile(original_name=name, relative_path=relative_path, size_bytes=len(data))
            )
        return files

    return _stage


@pytest.fixture
def runner(media_storage, record_sink, broadcaster):
    """Provide JobRunner wired to the test collaborators."""
    from cl_media_convert.runner import JobRunner

    return JobRunner(media_storage, sink=record_sink, broadcaster=broadcaster, max_files=5)


@pytest.fixture
def api_client(runner, media_storage):
    """Provide FastAPI TestClient for route testing."""
    from fastapi import FastAPI

    from cl_media_convert.routes import create_router

    app = FastAPI()

    # Create router with test dependencies
    def get_current_user():
        return None

    app.include_router(
        create_router(runner, media_storage, get_current_user, download_grace_seconds=0)
    )

    return TestClient(app)
