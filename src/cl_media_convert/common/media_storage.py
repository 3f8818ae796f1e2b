"""
MediaStorage Protocol - interface for the transient byte store.

Design goals:
- Hide internal folder structure
- Batch inputs live under a batch directory and are released one by one
- Outputs are addressed only by an opaque handle
- A handle is redeemable exactly once (deliver-then-expire)
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class StorageError(Exception):
    """Base class for storage-related errors."""


class BatchDirectoryCreationError(StorageError):
    def __init__(self, batch_id: str):
        self.batch_id: str = batch_id
        super().__init__(f"Failed to create storage directory for batch '{batch_id}'")


class OutputNotFoundError(StorageError):
    def __init__(self, handle: str):
        self.handle: str = handle
        super().__init__(f"Output '{handle}' does not exist or was already downloaded")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class SavedFile(BaseModel):
    """Metadata of a saved batch input."""

    relative_path: str = Field(
        ...,
        description="Relative path of the saved file within the batch storage",
    )
    size: int = Field(
        ...,
        ge=0,
        description="File size in bytes",
    )
    hash: str | None = Field(
        None,
        description="Optional content hash (SHA256)",
    )

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")


class ClaimedOutput(BaseModel):
    """An output taken out of storage by its handle."""

    handle: str
    filename: str
    path: Path


# ---------------------------------------------------------------------------
# File-like abstractions
# ---------------------------------------------------------------------------


class AsyncFileLike(Protocol):
    """Minimal async file-like interface."""

    async def read(self, size: int, /) -> bytes: ...


FileLike = AsyncFileLike | bytes | str | PathLike[str]


# ---------------------------------------------------------------------------
# Storage Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class MediaStorage(Protocol):
    """
    Protocol for the conversion byte store.

    Implementations own:
    - storage root
    - directory layout
    - handle generation
    - lifecycle management

    Callers interact ONLY via batch_id, relative paths and output handles.
    """

    # ---------------------------------------------------------------------
    # Batch inputs
    # ---------------------------------------------------------------------

    def create_directory(self, batch_id: str) -> None:
        """Create the input directory for a batch."""
        ...

    def remove(self, batch_id: str) -> bool:
        """
        Remove every remaining input of a batch.

        Returns:
            True if removed successfully, False otherwise.
        """
        ...

    async def save(
        self,
        batch_id: str,
        relative_path: str,
        file: FileLike,
    ) -> SavedFile:
        """
        Save an input into batch storage.

        `file` may be:
        - async file-like object (UploadFile, aiofiles, etc.)
        - bytes
        - existing filename or Path (copied)
        """
        ...

    def read(self, batch_id: str, relative_path: str) -> bytes:
        """Read a stored input in full."""
        ...

    def discard(self, batch_id: str, relative_path: str) -> None:
        """Delete one input. Missing files are ignored."""
        ...

    def resolve_path(
        self,
        batch_id: str,
        relative_path: str | None = None,
    ) -> Path:
        """Resolve a batch-relative path to an absolute filesystem path."""
        ...

    # ---------------------------------------------------------------------
    # Outputs
    # ---------------------------------------------------------------------

    def store_output(self, filename: str, data: bytes) -> str:
        """
        Persist an encoded output.

        Returns:
            Opaque handle used to download it.
        """
        ...

    def discard_output(self, handle: str) -> None:
        """Delete an output that will never be delivered."""
        ...

    def claim_output(self, handle: str) -> ClaimedOutput:
        """
        Take an output for delivery. A second claim of the same handle
        raises OutputNotFoundError.
        """
        ...

    def expire_output(self, handle: str) -> None:
        """Reclaim the bytes of a claimed output."""
        ...
