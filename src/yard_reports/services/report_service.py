"""Report service: accepts report requests and answers status lookups."""

import uuid
from datetime import UTC, datetime

from loguru import logger

from yard_reports.lib.exporter import normalize_columns, parse_columns
from yard_reports.lib.queue import JobQueue, JobQueueError
from yard_reports.schemas.report import (
    JobState,
    ReportJobMessage,
    ReportRequest,
    ReportStatus,
    ReportSubmitResponse,
)
from yard_reports.services.status_store import StatusStore


def build_status_url(status_path: str, job_id: str) -> str:
    """Relative status URL a client polls for one job."""
    return f"{status_path}?jobId={job_id}"


async def submit_report(
    request: ReportRequest,
    *,
    status_store: StatusStore,
    queue: JobQueue,
    timezone: str,
    status_path: str,
) -> ReportSubmitResponse:
    """Validate a report request, record it as PENDING and enqueue it.

    The PENDING status is written before the job is published, so a
    status lookup never returns 404 for an accepted job.

    Args:
        request: Client report request.
        status_store: Status document store.
        queue: Job queue the worker consumes.
        timezone: Canonical time zone recorded on the job.
        status_path: Path of the status endpoint.

    Returns:
        The new job id and its status URL.

    Raises:
        ColumnValidationError: If the request names unknown columns.
        JobQueueError: If the job could not be enqueued.
    """
    columns = parse_columns(request.columns)
    job_id = str(uuid.uuid4())

    status = ReportStatus(
        state=JobState.PENDING,
        columns=normalize_columns(columns),
        format=request.format,
    )
    await status_store.put(job_id, status)

    message = ReportJobMessage(
        **request.model_dump(exclude={"columns", "format", "filename"}),
        job_id=job_id,
        requested_at=datetime.now(UTC),
        tz=timezone,
        format=request.format,
        columns=columns,
        filename=request.filename,
    )
    try:
        await queue.publish(message.to_document(), dedup_id=job_id)
    except JobQueueError as exc:
        logger.error("Failed to queue report job {}: {}", job_id, exc)
        status.state = JobState.ERROR
        status.error = str(exc)
        await status_store.put(job_id, status)
        raise
    logger.info("Queued report job {} (format={})", job_id, request.format)

    return ReportSubmitResponse(job_id=job_id, status_url=build_status_url(status_path, job_id))


async def get_report_status(status_store: StatusStore, job_id: str) -> ReportStatus | None:
    """Look up a job's status document.

    Returns:
        The status, or None for an unknown job id.
    """
    try:
        uuid.UUID(job_id)
    except ValueError:
        return None
    return await status_store.get(job_id)
