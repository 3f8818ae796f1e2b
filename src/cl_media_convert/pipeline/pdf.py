"""Images to a multi-page PDF document, one image per page."""

from collections.abc import Sequence
from enum import StrEnum
from io import BytesIO

from loguru import logger
from PIL import Image

from ..common.errors import BatchSetupFailure, EncodeFailure
from ..utils.profiling import timed
from .decoder import decode_image
from .steps import RESAMPLE

MAX_PDF_PAGES = 20
PAGE_MARGIN_PT = 50
PDF_DPI = 150

# portrait page sizes in PostScript points (1/72 inch)
PAGE_SIZES: dict[str, tuple[int, int]] = {
    "A3": (842, 1191),
    "A4": (595, 842),
    "A5": (420, 595),
    "LETTER": (612, 792),
    "LEGAL": (612, 1008),
    "TABLOID": (792, 1224),
}


class PageOrientation(StrEnum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


def page_size_points(page_size: str, orientation: str) -> tuple[int, int]:
    """Resolve a page name and orientation to (width, height) in points.

    Raises:
        BatchSetupFailure: unknown page name or orientation
    """
    key = page_size.strip().upper()
    if key not in PAGE_SIZES:
        raise BatchSetupFailure(
            f"Unknown page size: {page_size}",
            [f"pageSize: expected one of {', '.join(PAGE_SIZES)}"],
        )
    try:
        layout = PageOrientation(orientation.strip().lower())
    except ValueError as exc:
        raise BatchSetupFailure(
            f"Unknown orientation: {orientation}",
            ["orientation: expected portrait or landscape"],
        ) from exc

    width, height = PAGE_SIZES[key]
    if layout == PageOrientation.LANDSCAPE:
        return height, width
    return width, height


def render_page(image: Image.Image, page_pt: tuple[int, int], dpi: int = PDF_DPI) -> Image.Image:
    """Fit `image` inside the page margins, centred on a white page."""
    scale = dpi / 72
    page_w, page_h = round(page_pt[0] * scale), round(page_pt[1] * scale)
    margin = round(PAGE_MARGIN_PT * scale)
    box_w, box_h = max(1, page_w - 2 * margin), max(1, page_h - 2 * margin)

    ratio = min(box_w / image.width, box_h / image.height)
    size = (max(1, round(image.width * ratio)), max(1, round(image.height * ratio)))
    fitted = image if size == image.size else image.resize(size, RESAMPLE)

    page = Image.new("RGB", (page_w, page_h), "white")
    offset = ((page_w - size[0]) // 2, (page_h - size[1]) // 2)
    if fitted.mode == "RGBA":
        page.paste(fitted, offset, fitted)
    else:
        page.paste(fitted.convert("RGB"), offset)
    return page


@timed
def images_to_pdf(
    images: Sequence[bytes],
    page_size: str = "A4",
    orientation: str = "portrait",
    *,
    dpi: int = PDF_DPI,
) -> bytes:
    """
    Lay out every image on its own page, in upload order.

    Raises:
        BatchSetupFailure: no images, too many images, bad page settings
        DecodeFailure / UnsupportedFormat: an image cannot be read
        EncodeFailure: the PDF writer failed
    """
    if not images:
        raise BatchSetupFailure("No images uploaded")
    if len(images) > MAX_PDF_PAGES:
        raise BatchSetupFailure(
            f"Too many images: {len(images)} uploaded, at most {MAX_PDF_PAGES} allowed"
        )
    page_pt = page_size_points(page_size, orientation)

    pages = [render_page(decode_image(data).image, page_pt, dpi) for data in images]

    buffer = BytesIO()
    try:
        pages[0].save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=pages[1:],
            resolution=float(dpi),
            quality=90,
        )
    except (OSError, ValueError) as exc:
        raise EncodeFailure("pdf", exc) from exc

    logger.debug(f"Rendered {len(pages)} page(s) on {page_size.upper()} {orientation}")
    return buffer.getvalue()
