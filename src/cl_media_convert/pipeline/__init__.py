"""Image pipeline - decode, transform, encode."""

from .decoder import DecodedImage, decode_image
from .encoder import QUALITY_TABLE, encode_image, resolve_encode_params
from .metadata import ImageMetadataReport, apply_metadata_policy, inspect_metadata
from .pdf import images_to_pdf
from .retouch import ToolOutput, clean_metadata, remove_watermark
from .transform_pipeline import ProcessedImage, TransformPipeline

__all__ = [
    "QUALITY_TABLE",
    "DecodedImage",
    "ImageMetadataReport",
    "ProcessedImage",
    "ToolOutput",
    "TransformPipeline",
    "apply_metadata_policy",
    "clean_metadata",
    "decode_image",
    "encode_image",
    "images_to_pdf",
    "inspect_metadata",
    "remove_watermark",
    "resolve_encode_params",
]
