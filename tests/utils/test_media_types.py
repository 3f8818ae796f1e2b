"""Unit tests for content-based media type detection.

Uses synthetic data generated in memory; the client-declared type is
never consulted by these helpers.
"""

from io import BytesIO

import pytest

from cl_media_convert.utils.media_types import (
    MediaType,
    determine_media_type,
    extension_of,
    sniff_mime,
)

# ============================================================================
# MediaType.from_mime Tests
# ============================================================================


@pytest.mark.parametrize(
    ("mime", "expected"),
    [
        ("image/jpeg", MediaType.IMAGE),
        ("image/svg+xml", MediaType.IMAGE),
        ("video/mp4", MediaType.VIDEO),
        ("audio/mpeg", MediaType.AUDIO),
        ("text/plain", MediaType.TEXT),
        ("application/pdf", MediaType.FILE),
        ("", MediaType.FILE),
    ],
)
def test_from_mime(mime: str, expected: MediaType):
    assert MediaType.from_mime(mime) == expected


# ============================================================================
# Sniffing Tests
# ============================================================================


def test_sniff_png(png_bytes: bytes):
    assert sniff_mime(png_bytes) == "image/png"
    assert sniff_mime(BytesIO(png_bytes)) == "image/png"


def test_sniff_jpeg(jpeg_bytes: bytes):
    assert sniff_mime(jpeg_bytes) == "image/jpeg"
    assert determine_media_type(jpeg_bytes) == MediaType.IMAGE


def test_sniff_text():
    assert determine_media_type(b"Hello, plain text content.\n") == MediaType.TEXT


def test_sniff_empty():
    assert sniff_mime(b"") == "application/x-empty"
    assert determine_media_type(BytesIO()) == MediaType.FILE


# ============================================================================
# Extension Tests
# ============================================================================


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("photo.JPG", "jpg"),
        ("archive.tar.gz", "gz"),
        ("README", "unknown"),
        ("dir/pic.webp", "webp"),
    ],
)
def test_extension_of(name: str, expected: str):
    assert extension_of(name) == expected
