from typing import Protocol, runtime_checkable

from .schema_batch import ConversionRecord


@runtime_checkable
class ConversionRecordSink(Protocol):
    """Append-only destination for one ConversionRecord per batch.

    Implementations must be safe to call from concurrent batches.
    """

    def append(self, record: ConversionRecord) -> None: ...
