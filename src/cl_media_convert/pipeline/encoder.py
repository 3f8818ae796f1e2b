"""Format encoder: quality tier resolution and serialization."""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, NamedTuple

from PIL import Image

from ..common.errors import EncodeFailure, UnsupportedFormat
from ..common.schema_request import QualityTier, TargetFormat
from ..utils.profiling import timed
from .metadata import OutputMetadata


class QualityParams(NamedTuple):
    quality: int  # jpeg/webp/avif/heif quality
    compression_level: int  # png zlib level


QUALITY_TABLE: dict[QualityTier, QualityParams] = {
    QualityTier.LOW: QualityParams(40, 6),
    QualityTier.MEDIUM: QualityParams(70, 4),
    QualityTier.HIGH: QualityParams(90, 2),
    QualityTier.LOSSLESS: QualityParams(100, 0),
}

# Containers that can carry EXIF / ICC data through Pillow
_EXIF_CAPABLE = {"JPEG", "PNG", "WEBP", "TIFF", "AVIF", "HEIF"}
_ICC_CAPABLE = {"JPEG", "PNG", "WEBP", "TIFF", "AVIF", "HEIF"}


@dataclass(frozen=True)
class EncodeParams:
    pil_format: str
    options: dict[str, Any] = field(default_factory=dict)
    mode: str | None = None  # required pixel mode, None keeps RGB/RGBA


def resolve_encode_params(target_format: TargetFormat | str, tier: QualityTier) -> EncodeParams:
    """Map (format, quality tier) to Pillow save arguments."""
    params = QUALITY_TABLE[tier]
    lossless = tier == QualityTier.LOSSLESS

    try:
        fmt = TargetFormat(target_format)
    except ValueError:
        # generic path for formats outside the enumeration
        return EncodeParams(str(target_format).upper(), {"quality": params.quality})

    match fmt:
        case TargetFormat.JPEG:
            return EncodeParams(
                "JPEG",
                {"quality": params.quality, "progressive": True, "optimize": True},
                mode="RGB",
            )
        case TargetFormat.PNG:
            # Pillow's PNG writer has no quality setting, so the lossless
            # tier's quality 100 has nothing to map to; only the level applies
            # and every tier stays lossless
            return EncodeParams("PNG", {"compress_level": params.compression_level})
        case TargetFormat.WEBP:
            return EncodeParams("WEBP", {"quality": params.quality, "lossless": lossless})
        case TargetFormat.AVIF:
            options: dict[str, Any] = {"quality": params.quality}
            if lossless:
                options["subsampling"] = "4:4:4"
            return EncodeParams("AVIF", options)
        case TargetFormat.TIFF:
            if lossless:
                return EncodeParams("TIFF", {"compression": "raw"})
            return EncodeParams(
                "TIFF", {"compression": "jpeg", "quality": params.quality}, mode="RGB"
            )
        case TargetFormat.GIF:
            return EncodeParams("GIF")
        case TargetFormat.BMP:
            return EncodeParams("BMP")
        case TargetFormat.HEIF:
            return EncodeParams("HEIF", {"quality": -1 if lossless else params.quality})


def _writer_available(pil_format: str) -> bool:
    Image.init()
    return pil_format in Image.SAVE


@timed
def encode_image(
    image: Image.Image,
    target_format: TargetFormat | str,
    tier: QualityTier,
    metadata: OutputMetadata | None = None,
) -> bytes:
    """
    Serialize `image` in the requested container.

    Raises:
        UnsupportedFormat: no writer is registered for the format
        EncodeFailure: the writer failed
    """
    params = resolve_encode_params(target_format, tier)
    if not _writer_available(params.pil_format):
        raise UnsupportedFormat(str(target_format), role="output")

    options = dict(params.options)
    if metadata is not None:
        if metadata.exif and params.pil_format in _EXIF_CAPABLE:
            options["exif"] = metadata.exif
        if metadata.icc_profile and params.pil_format in _ICC_CAPABLE:
            options["icc_profile"] = metadata.icc_profile

    img = image
    if params.mode is not None and img.mode != params.mode:
        # JPEG does not support alpha channel
        img = img.convert(params.mode)

    buffer = BytesIO()
    try:
        img.save(buffer, format=params.pil_format, **options)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise EncodeFailure(str(target_format), exc) from exc
    return buffer.getvalue()
