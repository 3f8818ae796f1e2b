"""Job runner - converts one batch of files under one shared request."""

import json
import threading
from collections.abc import Mapping, Sequence
from pathlib import PurePath
from typing import Any

from loguru import logger

from .common.errors import BatchSetupFailure
from .common.media_storage import MediaStorage
from .common.record_sink import ConversionRecordSink
from .common.schema_batch import (
    BatchOutcome,
    BatchSummary,
    ConversionFailure,
    ConversionRecord,
    ConversionResult,
    ConversionSuccess,
    InputFile,
)
from .common.schema_request import ConversionRequest
from .pipeline.decoder import decode_image
from .pipeline.encoder import encode_image
from .pipeline.transform_pipeline import TransformPipeline
from .utils.device_class import device_class_from_user_agent
from .utils.media_types import extension_of
from .utils.mqtt import BroadcasterBase, NoOpBroadcaster
from .utils.profiling import Stopwatch

DEFAULT_TOPIC_PREFIX = "cl_media_convert"
DEFAULT_MAX_FILES = 20


class CancellationToken:
    """Checked by the runner between files; thread safe."""

    def __init__(self) -> None:
        self._event: threading.Event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def output_name_for(original_name: str, request: ConversionRequest) -> str:
    stem = PurePath(original_name).stem or "image"
    return f"{stem}_converted.{request.target_format.extension}"


def apply_file_order(files: Sequence[InputFile], order: Sequence[int] | None) -> list[InputFile]:
    """Reorder by index list; out-of-range and repeated indices are skipped."""
    if order is None:
        return list(files)

    seen: set[int] = set()
    ordered: list[InputFile] = []
    for index in order:
        if index < 0 or index >= len(files) or index in seen:
            continue
        seen.add(index)
        ordered.append(files[index])
    return ordered


class JobRunner:
    """Runs batches strictly sequentially, one file at a time.

    Responsibilities:
    - Validates the batch before touching any file
    - Decodes, transforms and encodes each file, isolating per-file failure
    - Releases every input as soon as its own iteration ends
    - Computes the BatchSummary and hands one record to the sink

    The runner holds no per-batch state, so separate batches may run
    concurrently on the same instance.

    Example:
        storage = LocalFileStorage("./media")
        runner = JobRunner(storage, sink=JsonlConversionRecordSink("./records.jsonl"))
        outcome = runner.run(batch_id, files, {"format": "webp", "quality": "high"})
    """

    def __init__(
        self,
        storage: MediaStorage,
        sink: ConversionRecordSink | None = None,
        broadcaster: BroadcasterBase | None = None,
        *,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
        max_files: int = DEFAULT_MAX_FILES,
    ):
        self.storage: MediaStorage = storage
        self.sink: ConversionRecordSink | None = sink
        self.broadcaster: BroadcasterBase = broadcaster or NoOpBroadcaster()
        self.topic_prefix: str = topic_prefix
        self.max_files: int = max_files

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        batch_id: str,
        files: Sequence[InputFile],
        request: ConversionRequest | Mapping[str, Any],
        *,
        file_order: Sequence[int] | None = None,
        user_agent: str | None = None,
        user_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BatchOutcome:
        """Convert every file of the batch.

        Raises:
            BatchSetupFailure: before any file is processed; inputs are released
        """
        try:
            conversion, ordered = self._prepare(files, request, file_order)
        except BatchSetupFailure:
            _ = self.storage.remove(batch_id)
            raise

        pipeline = TransformPipeline(conversion)
        total = len(ordered)
        results: list[ConversionResult] = []
        input_formats: set[str] = set()
        total_bytes = 0
        cancelled = False

        logger.info(
            f"Batch {batch_id}: converting {total} file(s) to {conversion.target_format}"
        )
        self._publish(batch_id, "batch_started", file_count=total)

        stopwatch = Stopwatch().start()
        for position, input_file in enumerate(ordered):
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
                logger.warning(
                    f"Batch {batch_id}: cancelled after {position}/{total} file(s)"
                )
                for remaining in ordered[position:]:
                    self._release(batch_id, remaining.relative_path)
                break

            logger.info(f"Processing file {position + 1}/{total}: {input_file.original_name}")
            total_bytes += input_file.size_bytes
            try:
                result, input_format = self._convert_one(batch_id, input_file, conversion, pipeline)
            finally:
                self._release(batch_id, input_file.relative_path)

            input_formats.add(input_format)
            results.append(result)
            if isinstance(result, ConversionSuccess):
                self._publish(
                    batch_id,
                    "file_completed",
                    index=position,
                    original_name=result.original_name,
                    output_handle=result.output_handle,
                )
            else:
                self._publish(
                    batch_id,
                    "file_failed",
                    index=position,
                    original_name=result.original_name,
                    reason=result.reason,
                )
        duration_ms = stopwatch.stop()

        summary = BatchSummary(
            batch_id=batch_id,
            file_count=len(results),
            success_count=sum(1 for r in results if isinstance(r, ConversionSuccess)),
            total_input_bytes=total_bytes,
            processing_duration_ms=duration_ms,
            distinct_input_formats=frozenset(input_formats),
            device_class=device_class_from_user_agent(user_agent),
            output_format=conversion.target_format,
            cancelled=cancelled,
        )
        outcome = BatchOutcome(results=results, summary=summary)

        logger.info(
            f"Batch {batch_id}: {summary.success_count}/{summary.file_count} converted "
            f"in {duration_ms}ms"
        )
        self._record(outcome, user_id)
        self._publish(
            batch_id,
            "batch_completed",
            file_count=summary.file_count,
            success_count=summary.success_count,
            processing_duration_ms=duration_ms,
            cancelled=cancelled,
        )
        _ = self.storage.remove(batch_id)
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _prepare(
        self,
        files: Sequence[InputFile],
        request: ConversionRequest | Mapping[str, Any],
        file_order: Sequence[int] | None,
    ) -> tuple[ConversionRequest, list[InputFile]]:
        if not files:
            raise BatchSetupFailure("No files uploaded")
        if len(files) > self.max_files:
            raise BatchSetupFailure(
                f"Too many files: {len(files)} uploaded, at most {self.max_files} allowed"
            )

        if isinstance(request, ConversionRequest):
            conversion = request
        else:
            conversion = ConversionRequest.from_form(request)

        ordered = apply_file_order(files, file_order)
        if not ordered:
            raise BatchSetupFailure("fileOrder does not select any uploaded file")
        return conversion, ordered

    def _convert_one(
        self,
        batch_id: str,
        input_file: InputFile,
        request: ConversionRequest,
        pipeline: TransformPipeline,
    ) -> tuple[ConversionResult, str]:
        input_format = extension_of(input_file.original_name)
        try:
            data = self.storage.read(batch_id, input_file.relative_path)
            decoded = decode_image(data)
            input_format = decoded.format
            processed = pipeline.process(decoded)
            encoded = encode_image(
                processed.image,
                request.target_format,
                request.quality,
                processed.metadata,
            )
            output_name = output_name_for(input_file.original_name, request)
            handle = self.storage.store_output(output_name, encoded)
        except Exception as exc:
            reason = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            logger.warning(f"Failed to convert {input_file.original_name}: {reason}")
            return (
                ConversionFailure(
                    original_name=input_file.original_name,
                    reason=reason,
                    error_type=type(exc).__name__,
                ),
                input_format,
            )

        return (
            ConversionSuccess(
                original_name=input_file.original_name,
                output_handle=handle,
                output_name=output_name,
                output_format=request.target_format,
                input_format=input_format,
                output_size_bytes=len(encoded),
            ),
            input_format,
        )

    def _release(self, batch_id: str, relative_path: str) -> None:
        try:
            self.storage.discard(batch_id, relative_path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to release {relative_path} of batch {batch_id}: {e}")

    def _record(self, outcome: BatchOutcome, user_id: str | None) -> None:
        if self.sink is None:
            return
        try:
            self.sink.append(ConversionRecord.from_outcome(outcome, user_id))
        except Exception as e:
            logger.error(f"Failed to record batch {outcome.summary.batch_id}: {e}")

    def _publish(self, batch_id: str, event: str, **fields: Any) -> None:
        payload = json.dumps({"event": event, "batch_id": batch_id, **fields})
        try:
            _ = self.broadcaster.publish_event(
                topic=f"{self.topic_prefix}/batches/{batch_id}", payload=payload
            )
        except Exception as e:
            logger.error(f"Failed to publish {event} for batch {batch_id}: {e}")
