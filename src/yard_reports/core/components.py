"""Construction of the report pipeline's collaborators from settings.

Shared by the API lifespan and the CLI so both wire storage, queue and
worker the same way.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yard_reports.core.config import Settings
from yard_reports.lib.exporter import ExportFormat
from yard_reports.lib.queue import InMemoryJobQueue, JobQueue, SqsJobQueue, create_sqs_client
from yard_reports.lib.storage import S3ObjectStorage, create_s3_client
from yard_reports.services.record_source import MovementRecordSource
from yard_reports.services.report_worker import ReportWorker
from yard_reports.services.status_store import StatusStore


def build_object_storage(settings: Settings) -> S3ObjectStorage:
    """S3 storage for the reports bucket."""
    client = create_s3_client(
        settings.aws_region,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
    )
    return S3ObjectStorage(
        client,
        settings.reports_bucket,
        region=settings.aws_region,
        public_url=settings.storage_public_url,
    )


def build_status_store(settings: Settings, storage: S3ObjectStorage) -> StatusStore:
    """Status store under the configured reports prefix."""
    return StatusStore(storage, settings.reports_key_prefix)


def build_job_queue(settings: Settings) -> JobQueue:
    """Job queue for the configured backend.

    Raises:
        JobQueueError: If the SQS backend is selected without a queue URL.
    """
    if settings.reports_queue_backend == "memory":
        return InMemoryJobQueue()
    client = create_sqs_client(
        settings.aws_region,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
    )
    return SqsJobQueue(
        client,
        settings.reports_queue_url,
        visibility_timeout=settings.reports_worker_visibility_timeout,
    )


def build_report_worker(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    storage: S3ObjectStorage,
    status_store: StatusStore,
) -> ReportWorker:
    """Report worker reading from the movements database."""
    record_source = MovementRecordSource(
        session_factory,
        hard_max_rows=settings.reports_hard_max_rows,
        timezone=settings.reports_timezone,
        batch_size=settings.reports_cursor_batch_size,
    )
    return ReportWorker(
        status_store=status_store,
        record_source=record_source,
        storage=storage,
        checkpoint_rows={
            ExportFormat.CSV: settings.reports_csv_checkpoint_rows,
            ExportFormat.XLSX: settings.reports_xlsx_checkpoint_rows,
        },
        part_size=settings.reports_upload_part_size,
        queue_size=settings.reports_upload_queue_size,
    )
