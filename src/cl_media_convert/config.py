"""Service configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "CL_MEDIA_CONVERT_"


class ConverterConfig(BaseSettings):
    """Settings read from ``CL_MEDIA_CONVERT_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, frozen=True, extra="ignore")

    storage_dir: Path = Field(
        default=Path("~/.cache/cl_media_convert"),
        description="Root of the transient byte store",
    )
    records_file: Path | None = Field(
        default=None, description="JSON lines file for conversion records; None disables"
    )
    download_grace_seconds: float = Field(
        default=5.0, ge=0, description="Delay between delivery and deletion of an output"
    )
    max_files_per_batch: int = Field(default=20, gt=0)
    mqtt_url: str | None = Field(
        default=None, description="mqtt://host:port; None uses the no-op broadcaster"
    )
    topic_prefix: str = "cl_media_convert"

    @classmethod
    def from_env(cls) -> "ConverterConfig":
        return cls()


@lru_cache
def get_config() -> ConverterConfig:
    """Get cached config instance."""
    return ConverterConfig.from_env()
