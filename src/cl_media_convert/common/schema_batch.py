"""Per-file results, batch summary and the persisted conversion record."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..utils.device_class import DeviceClass
from .schema_request import TargetFormat


class InputFile(BaseModel):
    """One uploaded item, already saved into the batch directory."""

    original_name: str = Field(..., description="Client supplied file name")
    relative_path: str = Field(..., description="Path inside the batch storage directory")
    size_bytes: int = Field(..., ge=0)
    declared_mime: str | None = Field(
        default=None, description="Client declared MIME type; informational only"
    )

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")


class ConversionSuccess(BaseModel):
    status: Literal["success"] = "success"
    original_name: str
    output_handle: str
    output_name: str
    output_format: TargetFormat
    input_format: str
    output_size_bytes: int = Field(..., ge=0)

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class ConversionFailure(BaseModel):
    status: Literal["failure"] = "failure"
    original_name: str
    reason: str
    error_type: str = Field(..., description="Name of the error class")

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


ConversionResult = Annotated[
    ConversionSuccess | ConversionFailure,
    Field(discriminator="status"),
]


class BatchSummary(BaseModel):
    """Derived once per batch after the loop; never mutated."""

    batch_id: str
    file_count: int = Field(..., ge=0, description="Files attempted, failures included")
    success_count: int = Field(..., ge=0)
    total_input_bytes: int = Field(..., ge=0, description="Sum of every attempted input")
    processing_duration_ms: int = Field(..., ge=0)
    distinct_input_formats: frozenset[str] = Field(default_factory=frozenset)
    device_class: DeviceClass = DeviceClass.UNKNOWN
    output_format: TargetFormat
    cancelled: bool = False

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BatchOutcome(BaseModel):
    results: list[ConversionResult]
    summary: BatchSummary

    @property
    def successes(self) -> list[ConversionSuccess]:
        return [r for r in self.results if isinstance(r, ConversionSuccess)]

    @property
    def failures(self) -> list[ConversionFailure]:
        return [r for r in self.results if isinstance(r, ConversionFailure)]


class ConversionRecord(BaseModel):
    """Row appended to the record sink, one per batch."""

    user_id: str | None = None
    summary: BatchSummary
    original_names: list[str]
    converted_names: list[str]
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_outcome(cls, outcome: BatchOutcome, user_id: str | None = None) -> "ConversionRecord":
        return cls(
            user_id=user_id,
            summary=outcome.summary,
            original_names=[r.original_name for r in outcome.results],
            converted_names=[s.output_name for s in outcome.successes],
        )


# ---------------------------------------------------------------------------
# HTTP responses
# ---------------------------------------------------------------------------


class ResponseModel(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ConvertedFile(ResponseModel):
    original_name: str
    converted_name: str
    handle: str
    download_url: str
    size_bytes: int


class FailedFile(ResponseModel):
    original_name: str
    reason: str


class ConversionResponse(ResponseModel):
    message: str
    files: list[ConvertedFile]
    failed: list[FailedFile]
    summary: BatchSummary

    @classmethod
    def from_outcome(
        cls, outcome: BatchOutcome, download_url: Callable[[str], str]
    ) -> "ConversionResponse":
        summary = outcome.summary
        return cls(
            message=f"Converted {summary.success_count} of {summary.file_count} file(s)",
            files=[
                ConvertedFile(
                    original_name=s.original_name,
                    converted_name=s.output_name,
                    handle=s.output_handle,
                    download_url=download_url(s.output_handle),
                    size_bytes=s.output_size_bytes,
                )
                for s in outcome.successes
            ],
            failed=[
                FailedFile(original_name=f.original_name, reason=f.reason)
                for f in outcome.failures
            ],
            summary=summary,
        )


class ZipDownloadRequest(BaseModel):
    handles: list[str] = Field(..., min_length=1)


class ToolOutputResponse(ResponseModel):
    """Result of a single-image tool such as metadata cleaning."""

    message: str
    file: ConvertedFile
    note: str | None = None
