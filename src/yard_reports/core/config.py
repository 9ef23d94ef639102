"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# S3 rejects multipart parts smaller than 5 MiB (except the last one)
_MIN_PART_SIZE = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="Async SQLAlchemy connection string for the movements database",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # AWS / S3-compatible object storage
    aws_region: str = Field(description="AWS region for S3 and SQS clients")
    aws_access_key_id: str | None = Field(
        default=None,
        description="Access key (falls back to the default boto3 credential chain when unset)",
    )
    aws_secret_access_key: str | None = Field(
        default=None,
        description="Secret key (falls back to the default boto3 credential chain when unset)",
    )
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint (MinIO, R2, localstack)",
    )
    reports_bucket: str = Field(description="Bucket holding report status documents and output files")
    storage_public_url: str | None = Field(
        default=None,
        description="Public URL prefix for report downloads (defaults to the virtual-hosted S3 URL)",
    )
    reports_prefix: str = Field(
        default="temp-files/movements/reports",
        description="Key prefix for report status and output blobs",
    )

    # Job queue
    reports_queue_backend: str = Field(
        default="sqs",
        pattern=r"^(sqs|memory)$",
        description="Job queue transport: 'sqs' or in-process 'memory'",
    )
    reports_queue_url: str | None = Field(
        default=None,
        description="SQS queue URL for report jobs",
    )

    # Export pipeline
    reports_hard_max_rows: int = Field(
        default=1_000_000,
        description="Maximum rows any single export will count or emit",
        gt=0,
    )
    reports_timezone: str = Field(
        default="America/Toronto",
        description="Canonical time zone for date filters and rendered timestamps",
    )
    reports_csv_checkpoint_rows: int = Field(
        default=4_000,
        description="Rows between progress checkpoints for CSV exports",
        gt=0,
    )
    reports_xlsx_checkpoint_rows: int = Field(
        default=2_000,
        description="Rows between progress checkpoints for XLSX exports",
        gt=0,
    )
    reports_cursor_batch_size: int = Field(
        default=1_000,
        description="Rows fetched per database cursor round trip",
        gt=0,
    )
    reports_upload_part_size: int = Field(
        default=8 * 1024 * 1024,
        description="Multipart upload part size in bytes",
    )
    reports_upload_queue_size: int = Field(
        default=4,
        description="Encoded parts allowed to wait for upload before the encoder blocks",
        gt=0,
    )

    @field_validator("reports_timezone")
    @classmethod
    def validate_reports_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown reports_timezone: {v}"
            raise ValueError(msg) from exc
        return v

    @field_validator("reports_upload_part_size")
    @classmethod
    def validate_reports_upload_part_size(cls, v: int) -> int:
        if v < _MIN_PART_SIZE:
            msg = f"reports_upload_part_size must be at least {_MIN_PART_SIZE} bytes"
            raise ValueError(msg)
        return v

    # Worker
    reports_worker_embedded: bool = Field(
        default=False,
        description="Run an export worker inside the API process",
    )
    reports_worker_wait_seconds: int = Field(
        default=20,
        description="Long-poll wait when receiving queue messages",
        ge=0,
        le=20,
    )
    reports_worker_visibility_timeout: int = Field(
        default=900,
        description="Seconds a received message stays hidden before redelivery",
        gt=0,
    )
    reports_worker_max_receives: int = Field(
        default=5,
        description="Deliveries after which a failing job message is dropped",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )
    cors_origin_regex: str = Field(
        default="",
        description="Regex pattern for allowed CORS origins",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def reports_key_prefix(self) -> str:
        """Reports prefix without leading or trailing slashes."""
        return self.reports_prefix.strip("/")


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
