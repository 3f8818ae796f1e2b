"""Fixed-order transform pipeline."""

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from PIL import Image

from ..common.errors import ConversionError, TransformFailure
from ..common.schema_request import SEPIA_TINT, ConversionRequest
from ..utils.profiling import timed
from . import steps
from .decoder import DecodedImage
from .metadata import OutputMetadata, apply_metadata_policy
from .watermark import apply_watermark

Step = Callable[[Image.Image], Image.Image]


@dataclass(frozen=True)
class ProcessedImage:
    image: Image.Image
    metadata: OutputMetadata


class TransformPipeline:
    """
    Applies one ConversionRequest to decoded images.

    Order: resize, crop, rotate, colour modulation (then contrast),
    blur/sharpen, greyscale/sepia/tint, watermark, metadata policy.
    Each step is skipped when its parameters are at their defaults, and
    each operates on the output of the previous one.
    """

    def __init__(self, request: ConversionRequest):
        self.request: ConversionRequest = request
        self._steps: list[tuple[str, Step]] = self._build_steps(request)

    @staticmethod
    def _build_steps(request: ConversionRequest) -> list[tuple[str, Step]]:
        filters = request.filters
        chain: list[tuple[str, Step]] = []

        if request.resize is not None and request.resize.is_set:
            chain.append(("resize", lambda img: steps.resize(img, request.resize)))
        if request.crop is not None and request.crop.is_set:
            chain.append(("crop", lambda img: steps.crop(img, request.crop)))
        if request.rotate_degrees:
            chain.append(("rotate", lambda img: steps.rotate(img, request.rotate_degrees)))
        if filters.modulates:
            chain.append(
                (
                    "modulate",
                    lambda img: steps.modulate(
                        img,
                        brightness=filters.brightness,
                        saturation=filters.saturation,
                        hue=filters.hue,
                    ),
                )
            )
        if filters.contrast != 1.0:
            chain.append(("contrast", lambda img: steps.contrast(img, filters.contrast)))
        if filters.blur > 0:
            chain.append(("blur", lambda img: steps.blur(img, filters.blur)))
        if filters.sharpen > 0:
            chain.append(("sharpen", lambda img: steps.sharpen(img, filters.sharpen)))
        if filters.greyscale:
            chain.append(("greyscale", steps.greyscale))
        if filters.sepia:
            chain.append(("sepia", lambda img: steps.tint(img, SEPIA_TINT.as_tuple())))
        if filters.tint is not None:
            color = filters.tint.as_tuple()
            chain.append(("tint", lambda img: steps.tint(img, color)))
        if request.watermark is not None and request.watermark.active:
            chain.append(("watermark", lambda img: apply_watermark(img, request.watermark)))

        return chain

    @property
    def step_names(self) -> list[str]:
        return [name for name, _ in self._steps]

    @timed
    def process(self, decoded: DecodedImage) -> ProcessedImage:
        image = decoded.image
        for name, step in self._steps:
            try:
                image = step(image)
            except ConversionError:
                raise
            except Exception as exc:
                logger.debug(f"Step {name} failed: {exc}")
                raise TransformFailure(name, exc) from exc

        try:
            metadata = apply_metadata_policy(decoded, self.request.metadata_policy)
        except Exception as exc:
            raise TransformFailure("metadata", exc) from exc

        return ProcessedImage(image=image, metadata=metadata)
