"""Conversion route factory."""

import asyncio
import zipfile
from io import BytesIO
from pathlib import PurePath
from typing import Annotated, Callable, Protocol
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, Response
from loguru import logger
from starlette.background import BackgroundTask

from .common.errors import BatchSetupFailure, ConversionError
from .common.media_storage import MediaStorage, OutputNotFoundError
from .common.schema_batch import (
    ConversionResponse,
    ConvertedFile,
    InputFile,
    ToolOutputResponse,
    ZipDownloadRequest,
)
from .common.schema_request import parse_file_order
from .pipeline.metadata import ImageMetadataReport, inspect_metadata
from .pipeline.pdf import images_to_pdf
from .pipeline.retouch import ToolOutput, clean_metadata, remove_watermark
from .runner import JobRunner

UPLOAD_FIELD = "images"
ORDER_FIELD = "fileOrder"


class UserLike(Protocol):
    """Protocol for user objects returned by authentication."""

    id: str | None


def _batch_setup_error(exc: BatchSetupFailure) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": exc.message, "errors": exc.errors})


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    path = PurePath(name)
    counter = 1
    while candidate in used:
        candidate = f"{path.stem}({counter}){path.suffix}"
        counter += 1
    used.add(candidate)
    return candidate


def _build_zip(storage: MediaStorage, handles: list[str]) -> tuple[bytes, int]:
    """Claim each output into one archive; returns the bytes and how many went in."""
    buffer = BytesIO()
    used: set[str] = set()
    delivered = 0

    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for handle in handles:
            try:
                claimed = storage.claim_output(handle)
            except OutputNotFoundError:
                logger.debug(f"Skipping unknown output {handle}")
                continue
            try:
                archive.write(claimed.path, arcname=_unique_name(claimed.filename, used))
                delivered += 1
            finally:
                storage.expire_output(handle)

    return buffer.getvalue(), delivered


def create_router(
    runner: JobRunner,
    storage: MediaStorage,
    get_current_user: Callable[[], UserLike | None],
    *,
    download_grace_seconds: float = 5.0,
) -> APIRouter:
    """Create router with injected dependencies.

    Args:
        runner: JobRunner converting the uploaded batches
        storage: MediaStorage holding inputs and outputs
        get_current_user: Callable that returns current user (for auth)
        download_grace_seconds: delay between delivery and deletion of an output

    Returns:
        Configured APIRouter with conversion, download, metadata, PDF and
        single-image tool endpoints
    """
    router = APIRouter()

    async def _expire_later(handle: str) -> None:
        if download_grace_seconds > 0:
            await asyncio.sleep(download_grace_seconds)
        storage.expire_output(handle)
        logger.debug(f"Expired output {handle}")

    @router.post("/convert", response_model=ConversionResponse)
    async def convert_images(
        request: Request,
        images: Annotated[list[UploadFile] | None, File(description="Images to convert")] = None,
        user: Annotated[UserLike | None, Depends(get_current_user)] = None,
    ) -> ConversionResponse:
        """Convert a batch of images under one shared request.

        Every other form field is part of the conversion request
        (``format``, ``quality``, ``resize.width``, ``filters`` as JSON, ...).
        ``fileOrder`` optionally reorders the uploads by index.
        """
        form = await request.form()
        fields = {
            key: value
            for key, value in form.multi_items()
            if key not in (UPLOAD_FIELD, ORDER_FIELD) and isinstance(value, str)
        }
        order_value = form.get(ORDER_FIELD)

        try:
            file_order = parse_file_order(order_value if isinstance(order_value, str) else None)
        except BatchSetupFailure as exc:
            raise _batch_setup_error(exc) from exc

        batch_id = uuid4().hex
        storage.create_directory(batch_id)

        files: list[InputFile] = []
        for index, upload in enumerate(images or []):
            original_name = upload.filename or f"image_{index}"
            relative_path = f"{index:03d}_{PurePath(original_name).name}"
            saved = await storage.save(batch_id, relative_path, upload)
            files.append(
                InputFile(
                    original_name=original_name,
                    relative_path=saved.relative_path,
                    size_bytes=saved.size,
                    declared_mime=upload.content_type,
                )
            )

        try:
            outcome = await run_in_threadpool(
                runner.run,
                batch_id,
                files,
                fields,
                file_order=file_order,
                user_agent=request.headers.get("user-agent"),
                user_id=user.id if user else None,
            )
        except BatchSetupFailure as exc:
            raise _batch_setup_error(exc) from exc

        return ConversionResponse.from_outcome(
            outcome,
            lambda handle: str(request.url_for("download_output", handle=handle)),
        )

    @router.get("/download/{handle}", name="download_output")
    async def download_output(handle: str) -> FileResponse:
        """Deliver an output once; it is deleted after the grace period."""
        try:
            claimed = storage.claim_output(handle)
        except OutputNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

        return FileResponse(
            claimed.path,
            filename=claimed.filename,
            background=BackgroundTask(_expire_later, handle),
        )

    @router.post("/download-zip")
    async def download_zip(body: ZipDownloadRequest) -> Response:
        """Deliver several outputs as one zip archive; unknown handles are skipped."""
        content, delivered = await run_in_threadpool(_build_zip, storage, body.handles)
        if not delivered:
            raise HTTPException(status_code=404, detail="No downloadable outputs found")

        return Response(
            content=content,
            media_type="application/zip",
            headers={"Content-Disposition": 'attachment; filename="converted_images.zip"'},
        )

    @router.post("/metadata", response_model=ImageMetadataReport)
    async def read_metadata(
        file: Annotated[UploadFile, File(description="Image to inspect")],
        user: Annotated[UserLike | None, Depends(get_current_user)] = None,
    ) -> ImageMetadataReport:
        """Report basic properties, camera EXIF and GPS location."""
        data = await file.read()
        try:
            return await run_in_threadpool(inspect_metadata, data)
        except ConversionError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc

    def _tool_response(
        request: Request,
        output: ToolOutput,
        original_name: str,
        message: str,
        note: str | None = None,
    ) -> ToolOutputResponse:
        handle = storage.store_output(output.filename, output.data)
        logger.info(f"{message}: {original_name} -> {output.filename}")
        return ToolOutputResponse(
            message=message,
            file=ConvertedFile(
                original_name=original_name,
                converted_name=output.filename,
                handle=handle,
                download_url=str(request.url_for("download_output", handle=handle)),
                size_bytes=len(output.data),
            ),
            note=note,
        )

    @router.post("/convert-to-pdf")
    async def convert_to_pdf(
        images: Annotated[list[UploadFile] | None, File(description="One page each")] = None,
        page_size: Annotated[str, Form(alias="pageSize")] = "A4",
        orientation: Annotated[str, Form()] = "portrait",
        user: Annotated[UserLike | None, Depends(get_current_user)] = None,
    ) -> Response:
        """Combine the uploads into one PDF, in upload order."""
        payloads = [await upload.read() for upload in images or []]
        try:
            pdf = await run_in_threadpool(images_to_pdf, payloads, page_size, orientation)
        except BatchSetupFailure as exc:
            raise _batch_setup_error(exc) from exc
        except ConversionError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc

        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": 'attachment; filename="images.pdf"'},
        )

    @router.post("/remove-watermark", response_model=ToolOutputResponse)
    async def remove_watermark_route(
        request: Request,
        image: Annotated[UploadFile, File(description="Image with a light watermark")],
        user: Annotated[UserLike | None, Depends(get_current_user)] = None,
    ) -> ToolOutputResponse:
        """Soften a watermark; the output is always PNG."""
        original_name = image.filename or "image"
        data = await image.read()
        try:
            output = await run_in_threadpool(remove_watermark, data, original_name)
        except ConversionError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc

        return await run_in_threadpool(
            _tool_response,
            request,
            output,
            original_name,
            "Watermark removal attempted",
            "Results may vary depending on watermark type and image quality",
        )

    @router.post("/metadata/clean", response_model=ToolOutputResponse)
    async def clean_metadata_route(
        request: Request,
        file: Annotated[UploadFile, File(description="Image to strip")],
        user: Annotated[UserLike | None, Depends(get_current_user)] = None,
    ) -> ToolOutputResponse:
        """Remove EXIF and ICC data, keeping the source format."""
        original_name = file.filename or "image"
        data = await file.read()
        try:
            output = await run_in_threadpool(clean_metadata, data, original_name)
        except ConversionError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc

        return await run_in_threadpool(
            _tool_response, request, output, original_name, "Metadata removed"
        )

    _ = convert_images
    _ = download_output
    _ = download_zip
    _ = read_metadata
    _ = convert_to_pdf
    _ = remove_watermark_route
    _ = clean_metadata_route
    return router
