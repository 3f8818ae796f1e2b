"""Decode uploaded bytes into a Pillow image with orientation baked in."""

from dataclasses import dataclass
from io import BytesIO

from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from ..common.errors import DecodeFailure, UnsupportedFormat
from ..utils.media_types import MediaType, sniff_mime
from ..utils.profiling import timed

try:
    from pillow_heif import register_heif_opener
except ImportError:
    logger.debug("pillow-heif not installed; HEIF input/output disabled")
else:
    register_heif_opener()


@dataclass(frozen=True)
class DecodedImage:
    image: Image.Image
    format: str  # detected container format, lower case
    sniffed_mime: str
    exif: Image.Exif | None = None
    icc_profile: bytes | None = None

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


def _working_mode(image: Image.Image) -> str:
    return "RGBA" if image.has_transparency_data else "RGB"


@timed
def decode_image(data: bytes) -> DecodedImage:
    """
    Decode one input.

    The format is detected from content. Orientation recorded in EXIF is
    applied to the pixels so no later consumer rotates the image again.

    Raises:
        UnsupportedFormat: content is not an image at all
        DecodeFailure: content looks like an image but cannot be read
    """
    mime = sniff_mime(data)

    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            detected = (img.format or "unknown").lower()
            exif = img.getexif()
            icc_profile = img.info.get("icc_profile")
            upright = ImageOps.exif_transpose(img)
    except UnidentifiedImageError as exc:
        if MediaType.from_mime(mime) != MediaType.IMAGE:
            raise UnsupportedFormat(mime) from exc
        raise DecodeFailure(f"Cannot identify image data ({mime})") from exc
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"Cannot decode image: {exc}") from exc

    mode = _working_mode(upright)
    if upright.mode != mode:
        upright = upright.convert(mode)
    # metadata travels separately so writers never pick it up from info
    upright.info.clear()

    return DecodedImage(
        image=upright,
        format=detected,
        sniffed_mime=mime,
        exif=exif if len(exif) else None,
        icc_profile=icc_profile or None,
    )
