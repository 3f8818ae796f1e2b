from enum import StrEnum
from io import BytesIO
from pathlib import PurePath

import magic


class MediaType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"

    @classmethod
    def from_mime(cls, file_type: str) -> "MediaType":
        if file_type.startswith("image"):
            return MediaType.IMAGE
        elif file_type.startswith("video"):
            return MediaType.VIDEO
        elif file_type.startswith("audio"):
            return MediaType.AUDIO
        elif file_type.startswith("text"):
            return MediaType.TEXT
        else:
            return MediaType.FILE


def sniff_mime(data: bytes | BytesIO) -> str:
    """Return the MIME type sniffed from content; client-declared types are never consulted."""
    if isinstance(data, BytesIO):
        data = data.getvalue()
    if not data:
        return "application/x-empty"

    mime = magic.Magic(mime=True)
    file_type = mime.from_buffer(data[:8192])
    if not file_type:
        file_type = "application/octet-stream"
    return file_type


def determine_media_type(data: bytes | BytesIO) -> MediaType:
    return MediaType.from_mime(sniff_mime(data))


def extension_of(name: str) -> str:
    suffix = PurePath(name).suffix.lower().lstrip(".")
    return suffix or "unknown"
