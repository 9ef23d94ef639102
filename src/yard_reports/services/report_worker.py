"""Report worker: turns queued report jobs into uploaded files.

One message is processed at a time, start to finish:

1. skip jobs already DONE or ERROR (messages may be redelivered);
2. mark the job RUNNING with zeroed counters;
3. count matching rows (capped) as the progress denominator;
4. stream rows from the record source through the encoder into a
   multipart upload, checkpointing progress every N rows and stopping at
   the hard ceiling;
5. complete the upload and mark the job DONE with its download location.

Any failure in steps 3-5 is re-raised so the queue redelivers the message,
and a redelivered job starts over.  The job stays RUNNING, with the
failure recorded in ``error``, while retries remain; only the last
allowed attempt marks it ERROR, which is terminal like DONE.
"""

import asyncio
import contextlib
import json
import re
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError

from yard_reports.core.logging import job_logger
from yard_reports.lib.exporter import ExportFormat, create_encoder, normalize_columns, to_row
from yard_reports.lib.queue import JobQueue, QueuedMessage
from yard_reports.lib.storage import DEFAULT_PART_SIZE, DEFAULT_QUEUE_SIZE, S3ObjectStorage, StreamingUpload
from yard_reports.schemas.report import JobState, ReportJobMessage, ReportStatus
from yard_reports.services.record_source import MovementRecordSource
from yard_reports.services.status_store import StatusStore

# Rows between progress checkpoints, per output format
CHECKPOINT_ROWS: dict[ExportFormat, int] = {
    ExportFormat.XLSX: 2_000,
    ExportFormat.CSV: 4_000,
}

DEFAULT_MAX_RECEIVES = 5

_TERMINAL_STATES = (JobState.DONE, JobState.ERROR)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


class InvalidJobMessage(ValueError):
    """Raised when a queue message is not a usable report job."""


def parse_job_message(body: str | bytes | dict[str, Any]) -> ReportJobMessage:
    """Parse a raw queue message body.

    Raises:
        InvalidJobMessage: If the body is not JSON or lacks a job id.
    """
    try:
        payload = json.loads(body) if isinstance(body, str | bytes) else body
    except json.JSONDecodeError as exc:
        msg = f"Report job message is not valid JSON: {exc}"
        raise InvalidJobMessage(msg) from exc
    if not isinstance(payload, dict) or not payload.get("jobId"):
        msg = "jobId is required in message payload"
        raise InvalidJobMessage(msg)
    try:
        return ReportJobMessage.model_validate(payload)
    except ValidationError as exc:
        msg = f"Invalid report job message: {exc}"
        raise InvalidJobMessage(msg) from exc


def progress_percent(processed: int, total: int) -> int:
    """Whole-number progress, rounded half up and capped at 100; 0 when total is unknown."""
    if total <= 0:
        return 0
    return min(100, (processed * 200 + total) // (2 * total))


def content_disposition(filename: str | None, extension: str) -> str | None:
    """Attachment header for a client filename hint, or None without a hint."""
    if not filename:
        return None
    name = _UNSAFE_FILENAME_CHARS.sub("_", filename).strip(" ._")
    if not name:
        return None
    if not name.lower().endswith(f".{extension}"):
        name = f"{name}.{extension}"
    return f'attachment; filename="{name}"'


class ReportWorker:
    """Processes report jobs.

    Args:
        status_store: Where status documents are read and written.
        record_source: Movement queries.
        storage: Object storage receiving report files.
        checkpoint_rows: Rows between checkpoints per format.
        part_size: Multipart upload part size in bytes.
        queue_size: Encoded parts buffered ahead of the uploader.
    """

    def __init__(
        self,
        *,
        status_store: StatusStore,
        record_source: MovementRecordSource,
        storage: S3ObjectStorage,
        checkpoint_rows: dict[ExportFormat, int] | None = None,
        part_size: int = DEFAULT_PART_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.status_store = status_store
        self.record_source = record_source
        self.storage = storage
        self.checkpoint_rows = {**CHECKPOINT_ROWS, **(checkpoint_rows or {})}
        self._part_size = part_size
        self._queue_size = queue_size

    async def handle_message(self, body: str | bytes | dict[str, Any], *, final_attempt: bool = True) -> ReportStatus:
        """Parse and process one queue message body."""
        return await self.process(parse_job_message(body), final_attempt=final_attempt)

    async def process(self, job: ReportJobMessage, *, final_attempt: bool = True) -> ReportStatus:
        """Process one report job.

        Args:
            job: The report job.
            final_attempt: Whether the queue will not redeliver this job
                after a failure.  Failures on earlier attempts leave the
                job RUNNING so it never moves back from ERROR.

        Returns:
            The final status document.

        Raises:
            Exception: Anything raised while counting, streaming or
                uploading, after the failure has been recorded.
        """
        log = job_logger(job.job_id)
        existing = await self.status_store.get(job.job_id)
        if existing is not None and existing.state in _TERMINAL_STATES:
            log.info("Report job {} already {}, skipping", job.job_id, existing.state)
            return existing

        status = ReportStatus(
            state=JobState.RUNNING,
            columns=normalize_columns(job.columns),
            format=job.format,
            started_at=datetime.now(UTC),
            attempts=(existing.attempts if existing is not None else 0) + 1,
        )
        await self.status_store.put(job.job_id, status)
        log.info("Report job {} started (format={}, attempt={})", job.job_id, job.format, status.attempts)

        try:
            await self._export(job, status)
        except Exception as exc:
            log.exception("Report job {} failed after {} rows", job.job_id, status.processed)
            if final_attempt:
                status.state = JobState.ERROR
            status.error = str(exc) or type(exc).__name__
            status.download_key = None
            status.download_url = None
            await self.status_store.put(job.job_id, status)
            raise

        log.info("Report job {} complete: {} rows -> {}", job.job_id, status.row_count, status.download_key)
        return status

    async def _export(self, job: ReportJobMessage, status: ReportStatus) -> None:
        log = job_logger(job.job_id)

        status.total = await self.record_source.count(job)
        await self.status_store.put(job.job_id, status)
        log.info("Report job {} matched {} rows", job.job_id, status.total)

        encoder = create_encoder(status.format, status.columns)
        key = self.status_store.output_key(job.job_id, encoder.extension)
        every = self.checkpoint_rows[status.format]
        ceiling = self.record_source.hard_max_rows
        tz = self.record_source.tz

        try:
            async with StreamingUpload(
                self.storage,
                key,
                content_type=encoder.content_type,
                content_disposition=content_disposition(job.filename, encoder.extension),
                part_size=self._part_size,
                queue_size=self._queue_size,
            ) as upload:
                await upload.write(encoder.header())

                processed = 0
                async with contextlib.aclosing(self.record_source.stream(job)) as rows:
                    async for record in rows:
                        await upload.write(encoder.encode(to_row(status.columns, record, tz)))
                        processed += 1
                        status.processed = processed
                        status.row_count = processed
                        status.progress_percent = progress_percent(processed, status.total)
                        if processed % every == 0:
                            await self.status_store.put(job.job_id, status)
                        if processed >= ceiling:
                            log.warning("Report job {} truncated at {} rows", job.job_id, ceiling)
                            break

                async with contextlib.aclosing(encoder.finish()) as chunks:
                    async for chunk in chunks:
                        await upload.write(chunk)
                await upload.complete()
        finally:
            await asyncio.to_thread(encoder.discard)

        status.state = JobState.DONE
        status.progress_percent = 100
        status.download_key = key
        status.download_url = self.storage.public_url(key)
        status.error = None
        await self.status_store.put(job.job_id, status)


async def run_worker(
    worker: ReportWorker,
    queue: JobQueue,
    *,
    wait_seconds: int = 20,
    max_receives: int = DEFAULT_MAX_RECEIVES,
    stop_event: asyncio.Event | None = None,
    once: bool = False,
) -> int:
    """Consume report jobs until stopped.

    Handled messages are acked.  A failed message is released back to the
    queue for redelivery, and dropped once it has been received
    ``max_receives`` times.

    Args:
        worker: The report worker.
        queue: Job queue to consume.
        wait_seconds: Long-poll wait per receive.
        max_receives: Deliveries after which a failing message is dropped.
        stop_event: Set to stop after the current message.
        once: Return after one receive round.

    Returns:
        Number of messages handled successfully.
    """
    stop_event = stop_event or asyncio.Event()
    handled = 0
    logger.info("Report worker started")
    while not stop_event.is_set():
        messages = await queue.receive(max_messages=1, wait_seconds=wait_seconds)
        for message in messages:
            if await _handle_queued(worker, queue, message, max_receives=max_receives):
                handled += 1
        if once:
            break
    logger.info("Report worker stopped after {} jobs", handled)
    return handled


async def _handle_queued(
    worker: ReportWorker,
    queue: JobQueue,
    message: QueuedMessage,
    *,
    max_receives: int,
) -> bool:
    logger.info("Processing message {} (receive {})", message.message_id, message.receive_count)
    try:
        await worker.handle_message(message.body, final_attempt=message.receive_count >= max_receives)
    except Exception:
        if message.receive_count >= max_receives:
            logger.exception(
                "Message {} failed {} times, dropping it",
                message.message_id,
                message.receive_count,
            )
            await queue.ack(message)
        else:
            logger.exception("Message {} failed, releasing it for redelivery", message.message_id)
            await queue.nack(message)
        return False
    await queue.ack(message)
    return True
