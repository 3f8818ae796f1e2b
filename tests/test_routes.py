"""Tests for the conversion FastAPI routes."""

import io
import json
import zipfile

from fastapi.testclient import TestClient
from PIL import Image, PdfParser

from cl_media_convert.routes import _build_zip

# ============================================================================
# Helpers
# ============================================================================


def _upload(name: str, data: bytes, content_type: str = "image/png"):
    return ("images", (name, data, content_type))


def _convert(client: TestClient, files, **fields):
    return client.post("/convert", files=files, data=fields)


# ============================================================================
# /convert
# ============================================================================


class TestConvert:
    def test_converts_batch(
        self, api_client: TestClient, png_bytes: bytes, jpeg_bytes: bytes
    ) -> None:
        response = _convert(
            api_client,
            [_upload("a.png", png_bytes), _upload("b.jpg", jpeg_bytes, "image/jpeg")],
            format="webp",
            quality="medium",
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Converted 2 of 2 file(s)"
        assert [f["originalName"] for f in body["files"]] == ["a.png", "b.jpg"]
        assert body["files"][0]["convertedName"] == "a_converted.webp"
        assert body["files"][0]["downloadUrl"].endswith(f"/download/{body['files'][0]['handle']}")
        assert body["failed"] == []
        assert body["summary"]["fileCount"] == 2
        assert body["summary"]["outputFormat"] == "webp"

    def test_json_groups_and_file_order(
        self, api_client: TestClient, png_bytes: bytes, jpeg_bytes: bytes
    ) -> None:
        response = _convert(
            api_client,
            [_upload("a.png", png_bytes), _upload("b.jpg", jpeg_bytes, "image/jpeg")],
            format="png",
            resize=json.dumps({"width": 100}),
            filters=json.dumps({"grayscale": True}),
            fileOrder="[1, 0]",
        )

        assert response.status_code == 200
        assert [f["originalName"] for f in response.json()["files"]] == ["b.jpg", "a.png"]

    def test_declared_type_is_ignored(self, api_client: TestClient, png_bytes: bytes) -> None:
        response = _convert(
            api_client,
            [_upload("a.txt", png_bytes, "text/plain")],
            format="jpeg",
        )
        assert response.status_code == 200
        assert response.json()["summary"]["successCount"] == 1

    def test_bad_file_is_reported(self, api_client: TestClient, png_bytes: bytes) -> None:
        response = _convert(
            api_client,
            [_upload("good.png", png_bytes), _upload("bad.png", b"not an image at all")],
            format="png",
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Converted 1 of 2 file(s)"
        assert body["failed"][0]["originalName"] == "bad.png"
        assert body["failed"][0]["reason"]

    def test_invalid_request(self, api_client: TestClient, png_bytes: bytes) -> None:
        response = _convert(api_client, [_upload("a.png", png_bytes)], format="bogus")

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Invalid conversion request"
        assert detail["errors"]

    def test_no_files(self, api_client: TestClient) -> None:
        response = api_client.post("/convert", data={"format": "png"})
        assert response.status_code == 400

    def test_too_many_files(self, api_client: TestClient, png_bytes: bytes) -> None:
        files = [_upload(f"{i}.png", png_bytes) for i in range(6)]
        response = _convert(api_client, files, format="png")
        assert response.status_code == 400

    def test_malformed_file_order(self, api_client: TestClient, png_bytes: bytes) -> None:
        response = _convert(api_client, [_upload("a.png", png_bytes)], format="png", fileOrder="[1,")
        assert response.status_code == 400

    def test_record_written(self, api_client: TestClient, record_sink, png_bytes: bytes) -> None:
        _ = api_client.post(
            "/convert",
            files=[_upload("a.png", png_bytes)],
            data={"format": "gif"},
            headers={"User-Agent": "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)"},
        )
        assert len(record_sink.records) == 1
        assert record_sink.records[0].summary.device_class == "tablet"


# ============================================================================
# Downloads
# ============================================================================


class TestDownload:
    def test_single_use_download(self, api_client: TestClient, png_bytes: bytes) -> None:
        converted = _convert(api_client, [_upload("a.png", png_bytes)], format="jpeg")
        handle = converted.json()["files"][0]["handle"]

        first = api_client.get(f"/download/{handle}")
        assert first.status_code == 200
        assert "a_converted.jpg" in first.headers["content-disposition"]
        assert Image.open(io.BytesIO(first.content)).format == "JPEG"

        second = api_client.get(f"/download/{handle}")
        assert second.status_code == 404

    def test_unknown_handle(self, api_client: TestClient) -> None:
        assert api_client.get("/download/does-not-exist").status_code == 404

    def test_zip_download(self, api_client: TestClient, png_bytes: bytes) -> None:
        converted = _convert(
            api_client,
            [_upload("same.png", png_bytes), _upload("same.png", png_bytes)],
            format="png",
        )
        handles = [f["handle"] for f in converted.json()["files"]]

        response = api_client.post("/download-zip", json={"handles": [*handles, "f" * 32]})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert sorted(archive.namelist()) == ["same_converted(1).png", "same_converted.png"]

        # handles are spent
        assert api_client.get(f"/download/{handles[0]}").status_code == 404

    def test_zip_builder_runs_without_event_loop(self, media_storage) -> None:
        first = media_storage.store_output("a.png", b"first")
        second = media_storage.store_output("a.png", b"second")

        content, delivered = _build_zip(media_storage, [first, "0" * 32, second])

        assert delivered == 2
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            assert archive.read("a.png") == b"first"
            assert archive.read("a(1).png") == b"second"

    def test_zip_without_valid_handles(self, api_client: TestClient) -> None:
        response = api_client.post("/download-zip", json={"handles": ["nope"]})
        assert response.status_code == 404

    def test_zip_requires_handles(self, api_client: TestClient) -> None:
        response = api_client.post("/download-zip", json={"handles": []})
        assert response.status_code == 422


# ============================================================================
# /metadata
# ============================================================================


class TestMetadataRoute:
    def test_reports_exif_and_gps(self, api_client: TestClient, gps_jpeg_bytes: bytes) -> None:
        response = api_client.post(
            "/metadata", files={"file": ("photo.jpg", gps_jpeg_bytes, "image/jpeg")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["basic"]["format"] == "jpeg"
        assert body["exif"]["make"] == "TestCam"
        assert round(body["gps"]["latitude"], 3) == 37.775

    def test_rejects_non_image(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/metadata", files={"file": ("notes.txt", b"hello there", "text/plain")}
        )
        assert response.status_code == 400


# ============================================================================
# /convert-to-pdf
# ============================================================================


class TestConvertToPdf:
    def test_builds_document(
        self, api_client: TestClient, png_bytes: bytes, jpeg_bytes: bytes
    ) -> None:
        response = api_client.post(
            "/convert-to-pdf",
            files=[_upload("a.png", png_bytes), _upload("b.jpg", jpeg_bytes, "image/jpeg")],
            data={"pageSize": "letter", "orientation": "landscape"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="images.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")
        assert len(PdfParser.PdfParser(buf=response.content).pages) == 2

    def test_no_images(self, api_client: TestClient) -> None:
        response = api_client.post("/convert-to-pdf", data={"pageSize": "A4"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "No images uploaded"

    def test_unknown_page_size(self, api_client: TestClient, png_bytes: bytes) -> None:
        response = api_client.post(
            "/convert-to-pdf", files=[_upload("a.png", png_bytes)], data={"pageSize": "B9"}
        )
        assert response.status_code == 400

    def test_unreadable_image(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/convert-to-pdf", files=[_upload("a.txt", b"not pixels", "text/plain")]
        )
        assert response.status_code == 400


# ============================================================================
# Single-image tools
# ============================================================================


class TestSingleImageTools:
    def test_remove_watermark(self, api_client: TestClient, jpeg_bytes: bytes) -> None:
        response = api_client.post(
            "/remove-watermark", files={"image": ("scan.jpg", jpeg_bytes, "image/jpeg")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Watermark removal attempted"
        assert body["note"]
        assert body["file"]["originalName"] == "scan.jpg"
        assert body["file"]["convertedName"] == "scan_watermark_removed.png"

        download = api_client.get(body["file"]["downloadUrl"])
        assert download.status_code == 200
        assert Image.open(io.BytesIO(download.content)).format == "PNG"

    def test_clean_metadata(self, api_client: TestClient, gps_jpeg_bytes: bytes) -> None:
        response = api_client.post(
            "/metadata/clean", files={"file": ("photo.jpg", gps_jpeg_bytes, "image/jpeg")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["file"]["convertedName"] == "photo_clean.jpg"
        assert body["note"] is None

        download = api_client.get(f"/download/{body['file']['handle']}")
        img = Image.open(io.BytesIO(download.content))
        assert img.format == "JPEG"
        assert len(img.getexif()) == 0

    def test_tools_reject_non_images(self, api_client: TestClient) -> None:
        junk = ("notes.txt", b"hello there", "text/plain")
        assert api_client.post("/remove-watermark", files={"image": junk}).status_code == 400
        assert api_client.post("/metadata/clean", files={"file": junk}).status_code == 400
