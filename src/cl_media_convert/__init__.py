"""cl_media_convert - batch image conversion pipeline with FastAPI routes."""

from .common.errors import (
    BatchSetupFailure,
    ConversionError,
    DecodeFailure,
    EncodeFailure,
    InvalidGeometry,
    TransformFailure,
    UnsupportedFormat,
)
from .common.file_storage_impl import LocalFileStorage
from .common.media_storage import MediaStorage, OutputNotFoundError
from .common.record_sink import ConversionRecordSink
from .common.record_sink_impl import JsonlConversionRecordSink
from .common.schema_batch import (
    BatchOutcome,
    BatchSummary,
    ConversionFailure,
    ConversionRecord,
    ConversionSuccess,
    InputFile,
)
from .common.schema_request import ConversionRequest, MetadataPolicy, QualityTier, TargetFormat
from .config import ConverterConfig, get_config
from .master import create_master_router, create_runner
from .pipeline import TransformPipeline, decode_image, encode_image, inspect_metadata
from .runner import CancellationToken, JobRunner
from .utils.mqtt import (
    BroadcasterBase,
    MQTTBroadcaster,
    NoOpBroadcaster,
    get_broadcaster,
    shutdown_broadcaster,
)

__version__ = "0.1.0"

__all__ = [
    "BatchOutcome",
    "BatchSetupFailure",
    "BatchSummary",
    "BroadcasterBase",
    "CancellationToken",
    "ConversionError",
    "ConversionFailure",
    "ConversionRecord",
    "ConversionRecordSink",
    "ConversionRequest",
    "ConversionSuccess",
    "ConverterConfig",
    "DecodeFailure",
    "EncodeFailure",
    "InputFile",
    "InvalidGeometry",
    "JobRunner",
    "JsonlConversionRecordSink",
    "LocalFileStorage",
    "MQTTBroadcaster",
    "MediaStorage",
    "MetadataPolicy",
    "NoOpBroadcaster",
    "OutputNotFoundError",
    "QualityTier",
    "TargetFormat",
    "TransformFailure",
    "TransformPipeline",
    "UnsupportedFormat",
    "__version__",
    "create_master_router",
    "create_runner",
    "decode_image",
    "encode_image",
    "get_broadcaster",
    "get_config",
    "inspect_metadata",
    "shutdown_broadcaster",
]
