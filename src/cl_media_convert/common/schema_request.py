"""Pydantic schemas for the conversion request shared by every file of a batch."""

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any, ClassVar, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import BatchSetupFailure

# ─────────────────────────────────────────────────────────────
# Enumerations
# ─────────────────────────────────────────────────────────────


def _normalize_token(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


class TargetFormat(StrEnum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    GIF = "gif"
    TIFF = "tiff"
    BMP = "bmp"
    HEIF = "heif"

    @classmethod
    def _missing_(cls, value: object) -> "TargetFormat | None":
        if not isinstance(value, str):
            return None
        token = _normalize_token(value)
        token = {"jpg": "jpeg", "tif": "tiff", "heic": "heif"}.get(token, token)
        for member in cls:
            if member.value == token:
                return member
        return None

    @property
    def extension(self) -> str:
        return {"jpeg": "jpg", "heif": "heic"}.get(self.value, self.value)


class QualityTier(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    LOSSLESS = "lossless"


class FitMode(StrEnum):
    INSIDE = "inside"
    OUTSIDE = "outside"
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"


class WatermarkPosition(StrEnum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"

    @classmethod
    def _missing_(cls, value: object) -> "WatermarkPosition | None":
        if not isinstance(value, str):
            return None
        token = _normalize_token(value)
        for member in cls:
            if _normalize_token(member.value) == token:
                return member
        return None


class MetadataPolicy(StrEnum):
    KEEP = "keep"
    REMOVE_GPS = "remove_gps"
    REMOVE_ALL = "remove_all"

    @classmethod
    def _missing_(cls, value: object) -> "MetadataPolicy | None":
        # accepts removeGPS, remove-all, REMOVE_ALL, ...
        if not isinstance(value, str):
            return None
        token = _normalize_token(value)
        for member in cls:
            if _normalize_token(member.value) == token:
                return member
        return None


# ─────────────────────────────────────────────────────────────
# Option groups
# ─────────────────────────────────────────────────────────────


class RequestModel(BaseModel):
    """Base for request groups: immutable, camelCase or snake_case input."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data: Any) -> Any:
        # HTML forms submit untouched inputs as empty strings
        if isinstance(data, Mapping):
            return {
                k: v for k, v in data.items() if not (isinstance(v, str) and not v.strip())
            }
        return data


def _zero_is_unset(value: Any) -> Any:
    if value in (0, "0"):
        return None
    return value


class ResizeOptions(RequestModel):
    width: int | None = Field(default=None, gt=0, description="Target width in pixels")
    height: int | None = Field(default=None, gt=0, description="Target height in pixels")
    fit: FitMode = Field(default=FitMode.INSIDE, description="Aspect ratio policy")
    allow_enlargement: bool = Field(
        default=False, description="Permit upscaling beyond source dimensions"
    )

    @model_validator(mode="before")
    @classmethod
    def accept_without_enlargement(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            data = dict(data)
            for key in ("withoutEnlargement", "without_enlargement"):
                if key in data:
                    flag = data.pop(key)
                    if isinstance(flag, str):
                        flag = flag.strip().lower() not in ("false", "0", "no", "off")
                    data.setdefault("allow_enlargement", not flag)
        return data

    @field_validator("width", "height", mode="before")
    @classmethod
    def zero_dimension_is_unset(cls, value: Any) -> Any:
        return _zero_is_unset(value)

    @property
    def is_set(self) -> bool:
        return self.width is not None or self.height is not None


class CropBox(RequestModel):
    x: int = Field(default=0, ge=0, description="Left edge in pixels")
    y: int = Field(default=0, ge=0, description="Top edge in pixels")
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)

    @field_validator("width", "height", mode="before")
    @classmethod
    def zero_dimension_is_unset(cls, value: Any) -> Any:
        return _zero_is_unset(value)

    @property
    def is_set(self) -> bool:
        return self.width is not None and self.height is not None


class TintColor(RequestModel):
    r: int = Field(default=255, ge=0, le=255)
    g: int = Field(default=255, ge=0, le=255)
    b: int = Field(default=255, ge=0, le=255)

    @model_validator(mode="before")
    @classmethod
    def parse_color_string(cls, data: Any) -> Any:
        if isinstance(data, (tuple, list)) and len(data) == 3:
            return {"r": data[0], "g": data[1], "b": data[2]}
        if not isinstance(data, str):
            return data
        text = data.strip()
        if text.startswith("#") and len(text) == 7:
            return {"r": int(text[1:3], 16), "g": int(text[3:5], 16), "b": int(text[5:7], 16)}
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 3:
            raise ValueError(f"Invalid tint colour: {data!r}")
        return {"r": parts[0], "g": parts[1], "b": parts[2]}

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


SEPIA_TINT = TintColor(r=255, g=240, b=196)


class Filters(RequestModel):
    brightness: float = Field(default=1.0, ge=0, description="Lightness multiplier")
    saturation: float = Field(default=1.0, ge=0, description="Saturation multiplier")
    contrast: float = Field(default=1.0, ge=0, description="Linear contrast slope")
    hue: float = Field(default=0.0, description="Hue rotation in degrees")
    blur: float = Field(default=0.0, ge=0, description="Gaussian blur sigma")
    sharpen: float = Field(default=0.0, ge=0, description="Sharpen sigma")
    greyscale: bool = False
    sepia: bool = False
    tint: TintColor | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_grayscale_spelling(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "grayscale" in data:
            data = dict(data)
            data.setdefault("greyscale", data.pop("grayscale"))
        return data

    @field_validator("tint", mode="before")
    @classmethod
    def disabled_tint_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().startswith("{"):
            value = json.loads(value)
        if isinstance(value, Mapping) and "enabled" in value:
            value = dict(value)
            enabled = value.pop("enabled")
            if enabled in (False, "false", "0", 0, None):
                return None
        return value

    @property
    def modulates(self) -> bool:
        return self.brightness != 1.0 or self.saturation != 1.0 or self.hue != 0.0


class WatermarkOptions(RequestModel):
    enabled: bool = False
    type: Literal["text"] = "text"
    text: str = ""
    font_size: int = Field(default=24, gt=0)
    opacity: float = Field(default=0.5, ge=0, le=1)
    position: WatermarkPosition = WatermarkPosition.BOTTOM_RIGHT

    @property
    def active(self) -> bool:
        return self.enabled and self.type == "text" and bool(self.text)


# ─────────────────────────────────────────────────────────────
# Request
# ─────────────────────────────────────────────────────────────

_GROUPS = ("resize", "crop", "filters", "watermark", "metadata")


class ConversionRequest(RequestModel):
    """Validated once per batch and shared, unmodified, by every file."""

    target_format: TargetFormat = Field(
        validation_alias=AliasChoices("format", "targetFormat", "target_format"),
    )
    quality: QualityTier = QualityTier.HIGH
    resize: ResizeOptions | None = None
    crop: CropBox | None = None
    rotate_degrees: int = Field(
        default=0,
        validation_alias=AliasChoices("rotate", "rotateDegrees", "rotate_degrees"),
    )
    filters: Filters = Field(default_factory=Filters)
    watermark: WatermarkOptions | None = None
    metadata_policy: MetadataPolicy = Field(
        default=MetadataPolicy.KEEP,
        validation_alias=AliasChoices("metadata", "metadataPolicy", "metadata_policy"),
    )

    @field_validator("rotate_degrees")
    @classmethod
    def normalize_rotation(cls, value: int) -> int:
        return value % 360

    @field_validator("metadata_policy", mode="before")
    @classmethod
    def accept_policy_flags(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().startswith("{"):
            value = json.loads(value)
        if isinstance(value, Mapping):
            flags = {_normalize_token(str(k)): v for k, v in value.items()}
            if _truthy(flags.get("removeall")):
                return MetadataPolicy.REMOVE_ALL
            if _truthy(flags.get("removegps")):
                return MetadataPolicy.REMOVE_GPS
            return MetadataPolicy.KEEP
        return value

    @classmethod
    def from_form(cls, fields: Mapping[str, Any]) -> "ConversionRequest":
        """Build a request from flat form fields.

        Accepts ``resize.width`` and ``resize[width]`` keys as well as a whole
        group submitted as a JSON object string. Any validation problem is
        raised as ``BatchSetupFailure``.
        """
        try:
            payload = _nest_form_fields(fields)
        except (json.JSONDecodeError, TypeError) as exc:
            raise BatchSetupFailure(f"Malformed conversion request: {exc}") from exc

        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in err['loc']) or 'request'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise BatchSetupFailure("Invalid conversion request", errors) from exc


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _nest_form_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}

    for raw_key, value in fields.items():
        key = raw_key.replace("[", ".").replace("]", "")
        path = [part for part in key.split(".") if part]
        if not path:
            continue

        if len(path) == 1 and path[0] in _GROUPS and isinstance(value, str):
            text = value.strip()
            if text.startswith("{"):
                value = json.loads(text)
            elif not text:
                continue

        node = payload
        for part in path[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise TypeError(f"Conflicting values for '{raw_key}'")
            node = child

        leaf = path[-1]
        if isinstance(value, dict) and isinstance(node.get(leaf), dict):
            node[leaf].update(value)
        else:
            node[leaf] = value

    return payload


def parse_file_order(value: Any) -> list[int] | None:
    """Parse the optional reorder list (JSON array or comma separated)."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = json.loads(text) if text.startswith("[") else text.split(",")
        except json.JSONDecodeError as exc:
            raise BatchSetupFailure(f"Malformed fileOrder: {exc}") from exc
    try:
        return [int(str(item).strip()) for item in value]
    except (TypeError, ValueError) as exc:
        raise BatchSetupFailure(f"Malformed fileOrder: {value!r}") from exc
