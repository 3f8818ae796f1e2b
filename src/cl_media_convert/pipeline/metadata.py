"""Metadata policy and metadata inspection."""

from dataclasses import dataclass
from io import BytesIO
from typing import Any

from PIL import ExifTags, Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from ..common.errors import DecodeFailure, UnsupportedFormat
from ..common.schema_request import MetadataPolicy
from ..utils.media_types import sniff_mime
from .decoder import DecodedImage

IFD = ExifTags.IFD
Base = ExifTags.Base
GPS = ExifTags.GPS


@dataclass(frozen=True)
class OutputMetadata:
    """What the encoder embeds into the output container."""

    exif: bytes | None = None
    icc_profile: bytes | None = None


def _rebuild_exif(source: Image.Exif, *, keep_gps: bool) -> Image.Exif | None:
    # a fresh Exif is built because Exif.tobytes() re-adds every cached
    # sub-IFD, so deleting GPSInfo from the source would not drop it
    fresh = Image.Exif()
    for tag, value in source.items():
        if tag == IFD.GPSInfo:
            gps = source.get_ifd(IFD.GPSInfo)
            if keep_gps and gps:
                fresh[tag] = dict(gps)
            continue
        if tag == IFD.Exif:
            sub = dict(source.get_ifd(IFD.Exif))
            if IFD.Interop in sub and not isinstance(sub[IFD.Interop], dict):
                interop = source.get_ifd(IFD.Interop)
                if interop:
                    sub[IFD.Interop] = dict(interop)
                else:
                    del sub[IFD.Interop]
            if sub:
                fresh[tag] = sub
            continue
        fresh[tag] = value

    # pixels are already upright
    if Base.Orientation in fresh:
        fresh[Base.Orientation] = 1

    return fresh if len(fresh) else None


def apply_metadata_policy(decoded: DecodedImage, policy: MetadataPolicy) -> OutputMetadata:
    """
    keep:       all EXIF and the ICC profile, orientation reset to 1
    remove_gps: as keep, without the GPS block
    remove_all: nothing
    """
    if policy == MetadataPolicy.REMOVE_ALL:
        return OutputMetadata()

    exif_bytes: bytes | None = None
    if decoded.exif is not None:
        rebuilt = _rebuild_exif(decoded.exif, keep_gps=policy == MetadataPolicy.KEEP)
        if rebuilt is not None:
            exif_bytes = rebuilt.tobytes()

    return OutputMetadata(exif=exif_bytes, icc_profile=decoded.icc_profile)


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


class BasicInfo(BaseModel):
    format: str
    width: int
    height: int
    mode: str
    has_alpha: bool


class ExifSummary(BaseModel):
    make: str | None = Field(default=None, description="Camera manufacturer")
    model: str | None = Field(default=None, description="Camera model")
    date_time: str | None = Field(default=None, description="DateTimeOriginal, else DateTime")
    software: str | None = None
    orientation: int | None = Field(default=None, description="1=normal, 3=180, 6=90CW, 8=270CW")
    exposure_time: str | None = Field(default=None, description="Shutter speed, e.g. 1/125")
    f_number: float | None = None
    iso: int | None = None
    focal_length: float | None = Field(default=None, description="Focal length in mm")


class GpsInfo(BaseModel):
    latitude: float | None = Field(default=None, description="Decimal degrees")
    longitude: float | None = Field(default=None, description="Decimal degrees")
    altitude: float | None = Field(default=None, description="Meters")


class ImageMetadataReport(BaseModel):
    basic: BasicInfo
    exif: ExifSummary | None = None
    gps: GpsInfo | None = None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value).strip("\x00 ").strip()
    return text or None


def _number(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _exposure(value: Any) -> str | None:
    seconds = _number(value)
    if seconds is None or seconds <= 0:
        return None
    if seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}"


def dms_to_decimal(dms: Any, ref: Any) -> float | None:
    """Convert an EXIF (degrees, minutes, seconds) triple to signed degrees."""
    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    decimal = degrees + minutes / 60 + seconds / 3600
    if _text(ref) in ("S", "W"):
        decimal = -decimal
    return round(decimal, 6)


def _gps_info(gps: dict[int, Any]) -> GpsInfo | None:
    if not gps:
        return None
    altitude = _number(gps.get(GPS.GPSAltitude))
    if altitude is not None and gps.get(GPS.GPSAltitudeRef) in (1, b"\x01"):
        altitude = -altitude
    info = GpsInfo(
        latitude=dms_to_decimal(gps.get(GPS.GPSLatitude), gps.get(GPS.GPSLatitudeRef)),
        longitude=dms_to_decimal(gps.get(GPS.GPSLongitude), gps.get(GPS.GPSLongitudeRef)),
        altitude=altitude,
    )
    if info.latitude is None and info.longitude is None and info.altitude is None:
        return None
    return info


def _exif_summary(exif: Image.Exif) -> ExifSummary | None:
    if not len(exif):
        return None
    sub = exif.get_ifd(IFD.Exif)
    iso = sub.get(Base.ISOSpeedRatings)
    if isinstance(iso, tuple):
        iso = iso[0] if iso else None
    return ExifSummary(
        make=_text(exif.get(Base.Make)),
        model=_text(exif.get(Base.Model)),
        date_time=_text(sub.get(Base.DateTimeOriginal) or exif.get(Base.DateTime)),
        software=_text(exif.get(Base.Software)),
        orientation=exif.get(Base.Orientation),
        exposure_time=_exposure(sub.get(Base.ExposureTime)),
        f_number=_number(sub.get(Base.FNumber)),
        iso=int(iso) if iso is not None else None,
        focal_length=_number(sub.get(Base.FocalLength)),
    )


def inspect_metadata(data: bytes) -> ImageMetadataReport:
    """Summarize basic properties, camera EXIF and GPS location of an image."""
    try:
        with Image.open(BytesIO(data)) as img:
            basic = BasicInfo(
                format=(img.format or "unknown").lower(),
                width=img.width,
                height=img.height,
                mode=img.mode,
                has_alpha=img.has_transparency_data,
            )
            exif = img.getexif()
            summary = _exif_summary(exif)
            gps = _gps_info(exif.get_ifd(IFD.GPSInfo))
    except UnidentifiedImageError as exc:
        raise UnsupportedFormat(sniff_mime(data)) from exc
    except (OSError, ValueError, SyntaxError) as exc:
        raise DecodeFailure(f"Cannot read image metadata: {exc}") from exc

    return ImageMetadataReport(basic=basic, exif=summary, gps=gps)
