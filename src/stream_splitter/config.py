"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stream_splitter.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from SPLITTER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    storage_type: Literal["local", "s3"] = "local"
    storage_local_path: str = "./data"
    storage_s3_bucket: str = "stream-splitter-data"
    storage_s3_endpoint: str | None = None  # For MinIO or localstack
    storage_s3_region: str = "us-east-1"
    storage_s3_access_key: str | None = None
    storage_s3_secret_key: str | None = None

    # Source object bucket, when it differs from the destination bucket
    source_bucket: str | None = None

    # Output
    dest_prefix: str = "output"

    # Parsing
    delimiter: str = ","
    encoding: str = "utf-8-sig"

    # Key policy
    partition_template: str = "{Semester}"
    group_template: str = "{School}/{Grade}/{Subject}-{Class}.csv"

    # Background work
    cleanup_workers: int = Field(default=4, ge=1)
    commit_workers: int = Field(default=16, ge=1)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    @field_validator("delimiter")
    @classmethod
    def _single_char_delimiter(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("delimiter must be a single character")
        return value

    @field_validator("dest_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        return value.strip("/")


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        try:
            _settings = Settings()
        except ValidationError as e:
            fields = [".".join(str(loc) for loc in err["loc"]) for err in e.errors()]
            raise ConfigError(f"Invalid settings: {', '.join(fields)}", cause=e, fields=fields)
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
