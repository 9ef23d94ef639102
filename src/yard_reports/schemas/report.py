"""Movement report Pydantic v2 request/response and message schemas.

Wire documents use camelCase keys; Python code uses snake_case attributes.
"""

import enum
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from yard_reports.lib.exporter import ColumnToken, ExportFormat
from yard_reports.models.movement import MovementType, YardId


class JobState(enum.StrEnum):
    """Lifecycle state of a report job."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ReportFilters(CamelModel):
    """Search, filter, sort and paging criteria shared by requests and job messages."""

    q: str | None = None
    type: MovementType | None = None
    yard_id: YardId | None = None
    date_from: date | None = Field(default=None, description="Inclusive first day (YYYY-MM-DD)")
    date_to: date | None = Field(default=None, description="Inclusive last day (YYYY-MM-DD)")
    has_damage: bool | None = None
    new_damage_only: bool | None = None
    sort_by: str | None = None
    sort_dir: str | None = None
    page: int | None = None
    limit: int | None = None

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _day_part(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return v[:10]
        return v

    @field_validator("q", "type", "yard_id", "has_damage", "new_damage_only", "sort_by", "sort_dir", mode="before")
    @classmethod
    def _blank_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ReportRequest(ReportFilters):
    """Request to generate a movement report."""

    format: ExportFormat = ExportFormat.XLSX
    columns: str | list[str] | None = Field(
        default=None,
        description="Comma-separated string or list of column tokens",
    )
    filename: str | None = Field(default=None, max_length=200)

    @field_validator("format", mode="before")
    @classmethod
    def _lower_format(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower() or ExportFormat.XLSX
        return v


class ReportJobMessage(ReportFilters):
    """Queue message carrying one normalized report job."""

    job_id: str
    requested_at: datetime | None = None
    tz: str | None = None
    format: ExportFormat = ExportFormat.CSV
    columns: list[ColumnToken] | None = None
    filename: str | None = None


class ReportSubmitResponse(CamelModel):
    """Response for an accepted report request."""

    job_id: str
    status_url: str


class ReportStatus(CamelModel):
    """Status document persisted for every report job."""

    state: JobState
    progress_percent: int = 0
    processed: int = 0
    total: int = 0
    row_count: int = 0
    columns: list[ColumnToken] = Field(default_factory=list)
    format: ExportFormat
    started_at: datetime | None = None
    updated_at: datetime | None = None
    download_key: str | None = None
    download_url: str | None = None
    error: str | None = None
    attempts: int = 0
