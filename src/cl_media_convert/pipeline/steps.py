"""Pure transform steps.

Every step takes a Pillow image (RGB or RGBA) plus its parameters and
returns a new image; inputs are never modified. A step whose parameters
are at their identity value returns the image unchanged.
"""

from collections.abc import Callable

import numpy as np
from PIL import Image, ImageFilter, ImageOps

from ..common.errors import InvalidGeometry
from ..common.schema_request import CropBox, FitMode, ResizeOptions

RESAMPLE = Image.Resampling.LANCZOS

# ITU-R 601-2 luma, the same weights Pillow uses for "L" conversion
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float32)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _background(image: Image.Image) -> tuple[int, ...]:
    return (0, 0, 0, 0) if image.mode == "RGBA" else (0, 0, 0)


def _on_color(image: Image.Image, fn: Callable[[Image.Image], Image.Image]) -> Image.Image:
    """Apply `fn` to the colour bands, leaving any alpha band untouched."""
    if image.mode != "RGBA":
        return fn(image.convert("RGB") if image.mode != "RGB" else image)

    alpha = image.getchannel("A")
    rgb = fn(image.convert("RGB"))
    if rgb.mode != "RGB":
        rgb = rgb.convert("RGB")
    rgb.putalpha(alpha)
    return rgb


def _scaled_size(size: tuple[int, int], scale: float) -> tuple[int, int]:
    return (max(1, round(size[0] * scale)), max(1, round(size[1] * scale)))


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def target_box(size: tuple[int, int], options: ResizeOptions) -> tuple[int, int] | None:
    """Resolve the requested box; a single dimension keeps the aspect ratio."""
    src_w, src_h = size
    width, height = options.width, options.height
    if width is None and height is None:
        return None
    if width is None and height is not None:
        width = max(1, round(src_w * height / src_h))
    elif height is None and width is not None:
        height = max(1, round(src_h * width / src_w))
    return width, height


def resize(image: Image.Image, options: ResizeOptions | None) -> Image.Image:
    if options is None or not options.is_set:
        return image

    box = target_box(image.size, options)
    if box is None:
        return image
    box_w, box_h = box
    src_w, src_h = image.size

    if options.fit == FitMode.FILL:
        if not options.allow_enlargement and (box_w > src_w or box_h > src_h):
            return image
        if (box_w, box_h) == image.size:
            return image
        return image.resize((box_w, box_h), RESAMPLE)

    ratio_w, ratio_h = box_w / src_w, box_h / src_h
    if options.fit in (FitMode.INSIDE, FitMode.CONTAIN):
        scale = min(ratio_w, ratio_h)
    else:
        scale = max(ratio_w, ratio_h)
    if not options.allow_enlargement:
        scale = min(scale, 1.0)

    new_size = _scaled_size(image.size, scale)
    scaled = image if new_size == image.size else image.resize(new_size, RESAMPLE)

    if options.fit == FitMode.COVER:
        crop_w, crop_h = min(box_w, new_size[0]), min(box_h, new_size[1])
        left = (new_size[0] - crop_w) // 2
        top = (new_size[1] - crop_h) // 2
        if (crop_w, crop_h) == new_size:
            return scaled
        return scaled.crop((left, top, left + crop_w, top + crop_h))

    if options.fit == FitMode.CONTAIN:
        if new_size == (box_w, box_h):
            return scaled
        canvas = Image.new(scaled.mode, (box_w, box_h), _background(scaled))
        canvas.paste(scaled, ((box_w - new_size[0]) // 2, (box_h - new_size[1]) // 2))
        return canvas

    return scaled


def crop(image: Image.Image, box: CropBox | None) -> Image.Image:
    if box is None or box.width is None or box.height is None:
        return image

    img_w, img_h = image.size
    if box.x + box.width > img_w or box.y + box.height > img_h:
        raise InvalidGeometry(
            f"Crop rectangle x={box.x} y={box.y} {box.width}x{box.height} "
            f"exceeds image bounds {img_w}x{img_h}"
        )
    return image.crop((box.x, box.y, box.x + box.width, box.y + box.height))


def rotate(image: Image.Image, degrees: int) -> Image.Image:
    """Rotate clockwise. Right angles are lossless; others expand the canvas."""
    degrees %= 360
    if degrees == 0:
        return image
    if degrees == 90:
        return image.transpose(Image.Transpose.ROTATE_270)
    if degrees == 180:
        return image.transpose(Image.Transpose.ROTATE_180)
    if degrees == 270:
        return image.transpose(Image.Transpose.ROTATE_90)
    # Pillow rotates counter-clockwise
    return image.rotate(
        -degrees,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor=_background(image),
    )


# ---------------------------------------------------------------------------
# Colour
# ---------------------------------------------------------------------------


def modulate(
    image: Image.Image,
    *,
    brightness: float = 1.0,
    saturation: float = 1.0,
    hue: float = 0.0,
) -> Image.Image:
    """Joint brightness/saturation/hue adjustment in HSV space."""
    if brightness == 1.0 and saturation == 1.0 and hue % 360 == 0:
        return image

    def _apply(rgb: Image.Image) -> Image.Image:
        hsv = np.asarray(rgb.convert("HSV"), dtype=np.float32).copy()
        if hue % 360:
            hsv[..., 0] = np.mod(hsv[..., 0] + (hue % 360) / 360.0 * 256.0, 256.0)
        hsv[..., 1] *= saturation
        hsv[..., 2] *= brightness
        np.clip(hsv, 0, 255, out=hsv)
        data = np.rint(hsv).astype(np.uint8).tobytes()
        return Image.frombytes("HSV", rgb.size, data).convert("RGB")

    return _on_color(image, _apply)


def contrast_lut(contrast: float) -> list[int]:
    """Lookup table for ``out = contrast * in + (128 - 128 * contrast)``."""
    return [min(255, max(0, round(contrast * i + 128 - 128 * contrast))) for i in range(256)]


def contrast(image: Image.Image, value: float) -> Image.Image:
    if value == 1.0:
        return image
    lut = contrast_lut(value)
    return _on_color(image, lambda rgb: rgb.point(lut * 3))


def blur(image: Image.Image, sigma: float) -> Image.Image:
    if sigma <= 0:
        return image
    return _on_color(image, lambda rgb: rgb.filter(ImageFilter.GaussianBlur(radius=sigma)))


def sharpen(image: Image.Image, sigma: float) -> Image.Image:
    if sigma <= 0:
        return image
    return _on_color(
        image,
        lambda rgb: rgb.filter(ImageFilter.UnsharpMask(radius=sigma, percent=150, threshold=0)),
    )


def greyscale(image: Image.Image) -> Image.Image:
    return _on_color(image, lambda rgb: ImageOps.grayscale(rgb).convert("RGB"))


def tint(image: Image.Image, color: tuple[int, int, int]) -> Image.Image:
    """
    Replace chroma with that of `color`, keeping each pixel's luminance.

    Applied to an already grey image this yields a duotone.
    """
    tint_rgb = np.array(color, dtype=np.float32)
    offset = tint_rgb - float(tint_rgb @ _LUMA)

    def _apply(rgb: Image.Image) -> Image.Image:
        luma = np.asarray(ImageOps.grayscale(rgb), dtype=np.float32)[..., None]
        out = np.clip(luma + offset, 0, 255)
        return Image.fromarray(np.rint(out).astype(np.uint8))

    return _on_color(image, _apply)
