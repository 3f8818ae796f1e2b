"""Common module - protocols, schemas, errors and storage."""

from .errors import (
    BatchSetupFailure,
    ConversionError,
    DecodeFailure,
    EncodeFailure,
    InvalidGeometry,
    TransformFailure,
    UnsupportedFormat,
)
from .file_storage_impl import LocalFileStorage
from .media_storage import MediaStorage, OutputNotFoundError, StorageError
from .record_sink import ConversionRecordSink
from .record_sink_impl import JsonlConversionRecordSink
from .schema_batch import BatchOutcome, BatchSummary, ConversionFailure, ConversionSuccess
from .schema_request import ConversionRequest

__all__ = [
    "BatchOutcome",
    "BatchSetupFailure",
    "BatchSummary",
    "ConversionError",
    "ConversionFailure",
    "ConversionRecordSink",
    "ConversionRequest",
    "ConversionSuccess",
    "DecodeFailure",
    "EncodeFailure",
    "InvalidGeometry",
    "JsonlConversionRecordSink",
    "LocalFileStorage",
    "MediaStorage",
    "OutputNotFoundError",
    "StorageError",
    "TransformFailure",
    "UnsupportedFormat",
]
