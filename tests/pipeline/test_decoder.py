"""Tests for content-sniffed decoding."""

from io import BytesIO

import pytest
from PIL import Image

from cl_media_convert.common.errors import DecodeFailure, UnsupportedFormat
from cl_media_convert.pipeline.decoder import decode_image


class TestDecodeImage:
    def test_detects_format_from_content(self, png_bytes: bytes, jpeg_bytes: bytes) -> None:
        assert decode_image(png_bytes).format == "png"
        assert decode_image(jpeg_bytes).format == "jpeg"
        assert decode_image(png_bytes).sniffed_mime == "image/png"

    def test_working_mode_is_rgb(self, png_bytes: bytes) -> None:
        decoded = decode_image(png_bytes)
        assert decoded.image.mode == "RGB"
        assert decoded.size == (400, 300)

    def test_alpha_is_kept(self, make_image) -> None:
        decoded = decode_image(make_image("PNG", mode="RGBA"))
        assert decoded.image.mode == "RGBA"

    def test_greyscale_is_promoted(self) -> None:
        buffer = BytesIO()
        Image.new("L", (10, 10), 90).save(buffer, format="PNG")
        decoded = decode_image(buffer.getvalue())
        assert decoded.image.mode == "RGB"
        assert decoded.image.getpixel((0, 0)) == (90, 90, 90)

    def test_palette_transparency_becomes_rgba(self) -> None:
        buffer = BytesIO()
        img = Image.new("P", (10, 10), 0)
        img.putpalette([0, 0, 0, 255, 0, 0] + [0] * 762)
        img.save(buffer, format="GIF", transparency=0)
        decoded = decode_image(buffer.getvalue())
        assert decoded.format == "gif"
        assert decoded.image.mode == "RGBA"

    def test_orientation_is_baked_into_pixels(self, rotated_jpeg_bytes: bytes) -> None:
        decoded = decode_image(rotated_jpeg_bytes)
        assert decoded.size == (300, 400)
        assert decoded.exif is not None

    def test_metadata_is_detached_from_image_info(self, gps_jpeg_bytes: bytes) -> None:
        decoded = decode_image(gps_jpeg_bytes)
        assert decoded.image.info == {}
        assert decoded.exif is not None

    def test_non_image_is_unsupported(self) -> None:
        with pytest.raises(UnsupportedFormat) as exc_info:
            _ = decode_image(b"just some text, definitely not an image\n" * 4)
        assert exc_info.value.role == "input"
        assert exc_info.value.file_scoped

    def test_truncated_image_fails_to_decode(self, png_bytes: bytes) -> None:
        with pytest.raises(DecodeFailure):
            _ = decode_image(png_bytes[:120])

    def test_empty_input(self) -> None:
        with pytest.raises(UnsupportedFormat):
            _ = decode_image(b"")
