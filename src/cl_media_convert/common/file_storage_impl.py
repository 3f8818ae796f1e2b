from __future__ import annotations

import hashlib
import os
import re
import shutil
import uuid
from os import PathLike
from pathlib import Path
from typing import Final

import aiofiles

from .media_storage import (
    BatchDirectoryCreationError,
    ClaimedOutput,
    FileLike,
    MediaStorage,
    OutputNotFoundError,
    SavedFile,
)

_HANDLE_RE: Final = re.compile(r"^[0-9a-f]{32}$")


class LocalFileStorage(MediaStorage):
    """
    Local filesystem implementation of MediaStorage.

    Layout:
        base_dir/
            batches/<batch_id>/<relative_path>
            outputs/<handle>/<filename>
            outputs/<handle>.delivered/<filename>   (claimed, awaiting expiry)
    """

    _CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MB
    _DELIVERED_SUFFIX: Final[str] = ".delivered"

    def __init__(self, base_dir: str | PathLike[str]):
        self._base_dir: Path = Path(base_dir).expanduser().resolve()
        self._batches_dir: Path = self._base_dir / "batches"
        self._outputs_dir: Path = self._base_dir / "outputs"
        self._batches_dir.mkdir(parents=True, exist_ok=True)
        self._outputs_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _batch_dir(self, batch_id: str) -> Path:
        return self._batches_dir / batch_id

    def _safe_path(self, batch_id: str, relative_path: str | None = None) -> Path:
        """
        Resolve and validate a batch-relative path.
        Prevents path traversal.
        """
        base = self._batch_dir(batch_id).resolve()
        if self._batches_dir not in base.parents:
            raise ValueError("Invalid batch id (path traversal detected)")

        path = base if relative_path is None else (base / relative_path)
        resolved = path.resolve()

        if base not in resolved.parents and resolved != base:
            raise ValueError("Invalid relative path (path traversal detected)")

        return resolved

    def _output_dir(self, handle: str, *, delivered: bool = False) -> Path:
        if not _HANDLE_RE.match(handle):
            raise OutputNotFoundError(handle)
        name = handle + self._DELIVERED_SUFFIX if delivered else handle
        return self._outputs_dir / name

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    def create_directory(self, batch_id: str) -> None:
        try:
            self._safe_path(batch_id).mkdir(parents=True, exist_ok=True)
        except (OSError, ValueError) as exc:
            raise BatchDirectoryCreationError(batch_id) from exc

    def remove(self, batch_id: str) -> bool:
        try:
            shutil.rmtree(self._safe_path(batch_id), ignore_errors=False)
            return True
        except (OSError, ValueError):
            return False

    # ------------------------------------------------------------------
    # Batch inputs
    # ------------------------------------------------------------------

    async def save(
        self,
        batch_id: str,
        relative_path: str,
        file: FileLike,
    ) -> SavedFile:
        self.create_directory(batch_id)

        dst = self._safe_path(batch_id, relative_path)
        dst.parent.mkdir(parents=True, exist_ok=True)

        size = 0
        hasher = hashlib.sha256()

        # --------------------------------------------------------------
        # Case 1: bytes
        # --------------------------------------------------------------
        if isinstance(file, (bytes, bytearray)):
            async with aiofiles.open(dst, "wb") as f:
                _ = await f.write(file)
            size = len(file)
            hasher.update(file)

        # --------------------------------------------------------------
        # Case 2: filename / PathLike -> copy
        # --------------------------------------------------------------
        elif isinstance(file, (str, PathLike)):
            src = Path(file).expanduser().resolve()
            if not src.is_file():
                raise FileNotFoundError(src)

            _ = shutil.copyfile(src, dst)
            size = dst.stat().st_size

            with open(dst, "rb") as f:
                for chunk in iter(lambda: f.read(self._CHUNK_SIZE), b""):
                    hasher.update(chunk)

        # --------------------------------------------------------------
        # Case 3: async file-like
        # --------------------------------------------------------------
        else:
            async with aiofiles.open(dst, "wb") as f:
                while True:
                    chunk = await file.read(self._CHUNK_SIZE)
                    if not chunk:
                        break
                    _ = await f.write(chunk)
                    size += len(chunk)
                    hasher.update(chunk)

        return SavedFile(
            relative_path=relative_path,
            size=size,
            hash=hasher.hexdigest(),
        )

    def read(self, batch_id: str, relative_path: str) -> bytes:
        return self._safe_path(batch_id, relative_path).read_bytes()

    def discard(self, batch_id: str, relative_path: str) -> None:
        self._safe_path(batch_id, relative_path).unlink(missing_ok=True)

    def resolve_path(
        self,
        batch_id: str,
        relative_path: str | None = None,
    ) -> Path:
        return self._safe_path(batch_id, relative_path)

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def store_output(self, filename: str, data: bytes) -> str:
        handle = uuid.uuid4().hex
        target_dir = self._output_dir(handle)
        target_dir.mkdir(parents=True)
        (target_dir / Path(filename).name).write_bytes(data)
        return handle

    def discard_output(self, handle: str) -> None:
        shutil.rmtree(self._output_dir(handle), ignore_errors=True)

    def claim_output(self, handle: str) -> ClaimedOutput:
        pending = self._output_dir(handle)
        delivered = self._output_dir(handle, delivered=True)
        try:
            # rename is atomic, so concurrent claims cannot both succeed
            os.rename(pending, delivered)
        except FileNotFoundError as exc:
            raise OutputNotFoundError(handle) from exc

        files = [p for p in delivered.iterdir() if p.is_file()]
        if not files:
            shutil.rmtree(delivered, ignore_errors=True)
            raise OutputNotFoundError(handle)
        return ClaimedOutput(handle=handle, filename=files[0].name, path=files[0])

    def expire_output(self, handle: str) -> None:
        shutil.rmtree(self._output_dir(handle, delivered=True), ignore_errors=True)
