"""Text watermark compositing."""

from PIL import Image, ImageDraw, ImageFont

from ..common.schema_request import WatermarkOptions, WatermarkPosition

MARGIN = 10
TOP_BASELINE = 30
CHAR_WIDTH_FACTOR = 0.6


def estimate_text_width(text: str, font_size: int) -> float:
    return len(text) * font_size * CHAR_WIDTH_FACTOR


def anchor_point(
    size: tuple[int, int],
    text: str,
    font_size: int,
    position: WatermarkPosition,
) -> tuple[float, float]:
    """Left end of the text baseline for the given position."""
    width, height = size
    text_width = estimate_text_width(text, font_size)

    match position:
        case WatermarkPosition.TOP_LEFT:
            return (MARGIN, TOP_BASELINE)
        case WatermarkPosition.TOP_RIGHT:
            return (width - text_width - MARGIN, TOP_BASELINE)
        case WatermarkPosition.BOTTOM_LEFT:
            return (MARGIN, height - MARGIN)
        case WatermarkPosition.BOTTOM_RIGHT:
            return (width - text_width - MARGIN, height - MARGIN)
        case WatermarkPosition.CENTER:
            return ((width - text_width) / 2, height / 2)


def apply_watermark(image: Image.Image, options: WatermarkOptions | None) -> Image.Image:
    """
    Render the text on a transparent overlay and alpha-composite it.

    The fill is white at `opacity`; a 1px black outline is drawn at half
    that opacity.
    """
    if options is None or not options.active:
        return image

    base = image.convert("RGBA") if image.mode != "RGBA" else image
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    font = ImageFont.load_default(size=options.font_size)
    x, y = anchor_point(base.size, options.text, options.font_size, options.position)
    fill_alpha = round(255 * options.opacity)

    anchor: str | None = "ls"
    if not isinstance(font, ImageFont.FreeTypeFont):
        # bitmap fonts only anchor at the top-left corner
        anchor = None
        y -= options.font_size

    draw.text(
        (x, y),
        options.text,
        font=font,
        fill=(255, 255, 255, fill_alpha),
        stroke_width=1,
        stroke_fill=(0, 0, 0, round(fill_alpha * 0.5)),
        anchor=anchor,
    )

    composited = Image.alpha_composite(base, overlay)
    return composited if image.mode == "RGBA" else composited.convert(image.mode)
