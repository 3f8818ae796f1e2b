"""Single-image tools: watermark softening and metadata cleaning."""

from dataclasses import dataclass
from pathlib import PurePath

from ..common.schema_request import MetadataPolicy, QualityTier, TargetFormat
from ..utils.profiling import timed
from . import steps
from .decoder import decode_image
from .encoder import encode_image
from .metadata import apply_metadata_policy

WATERMARK_BRIGHTNESS = 1.1
WATERMARK_SATURATION = 1.2
WATERMARK_SHARPEN_SIGMA = 1.0

# containers Pillow reports under their own name but writes as another
_WRITE_AS = {"mpo": "jpeg"}


@dataclass(frozen=True)
class ToolOutput:
    filename: str
    data: bytes


def _stem(original_name: str) -> str:
    return PurePath(original_name).stem or "image"


@timed
def remove_watermark(data: bytes, original_name: str) -> ToolOutput:
    """
    Best-effort attempt at fading a light overlay.

    Brightness and saturation are lifted and the result sharpened, then
    written as lossless PNG. Results vary with the kind of watermark.
    """
    decoded = decode_image(data)
    image = steps.modulate(
        decoded.image, brightness=WATERMARK_BRIGHTNESS, saturation=WATERMARK_SATURATION
    )
    image = steps.sharpen(image, WATERMARK_SHARPEN_SIGMA)
    encoded = encode_image(image, TargetFormat.PNG, QualityTier.LOSSLESS)
    return ToolOutput(f"{_stem(original_name)}_watermark_removed.png", encoded)


@timed
def clean_metadata(data: bytes, original_name: str) -> ToolOutput:
    """Re-encode in the detected format with EXIF and ICC data removed."""
    decoded = decode_image(data)
    fmt = _WRITE_AS.get(decoded.format, decoded.format)
    encoded = encode_image(
        decoded.image,
        fmt,
        QualityTier.HIGH,
        apply_metadata_policy(decoded, MetadataPolicy.REMOVE_ALL),
    )

    suffix = PurePath(original_name).suffix
    if not suffix:
        try:
            suffix = f".{TargetFormat(fmt).extension}"
        except ValueError:
            suffix = f".{fmt}"
    return ToolOutput(f"{_stem(original_name)}_clean{suffix}", encoded)
