"""Report status store: one JSON status document per job in object storage."""

import asyncio
import json
from datetime import UTC, datetime

from loguru import logger

from yard_reports.lib.storage import S3ObjectStorage, key_join
from yard_reports.schemas.report import ReportStatus

STATUS_CONTENT_TYPE = "application/json"


class StatusStore:
    """Reads and overwrites report status documents.

    Every write replaces the whole document, so a duplicate write from a
    redelivered job can never leave a half-updated record.

    Args:
        storage: Object storage holding the documents.
        prefix: Key prefix shared by status documents and report files.
    """

    def __init__(self, storage: S3ObjectStorage, prefix: str) -> None:
        self.storage = storage
        self.prefix = prefix.strip("/")

    def status_key(self, job_id: str) -> str:
        """Key of a job's status document."""
        return key_join(self.prefix, f"{job_id}.json")

    def output_key(self, job_id: str, extension: str) -> str:
        """Key of a job's report file."""
        return key_join(self.prefix, f"{job_id}.{extension}")

    async def get(self, job_id: str) -> ReportStatus | None:
        """Fetch a job's status document, or None if there is none."""
        body = await asyncio.to_thread(self.storage.get_bytes, self.status_key(job_id))
        if body is None:
            return None
        return ReportStatus.model_validate_json(body)

    async def put(self, job_id: str, status: ReportStatus) -> ReportStatus:
        """Stamp ``updated_at`` and overwrite the job's status document."""
        status.updated_at = datetime.now(UTC)
        body = json.dumps(status.to_document()).encode("utf-8")
        await asyncio.to_thread(self.storage.put_bytes, self.status_key(job_id), body, STATUS_CONTENT_TYPE)
        logger.debug(
            "Wrote status for job {}: state={} processed={}/{}",
            job_id,
            status.state,
            status.processed,
            status.total,
        )
        return status
