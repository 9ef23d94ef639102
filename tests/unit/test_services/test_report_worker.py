"""Unit tests for the report worker."""

import asyncio
import json
import time
import uuid
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest
import xlsxwriter

from yard_reports.lib.exporter import ColumnToken, ExportFormat
from yard_reports.lib.queue import InMemoryJobQueue
from yard_reports.lib.storage import S3ObjectStorage
from yard_reports.schemas.report import JobState, ReportFilters, ReportJobMessage, ReportStatus
from yard_reports.services.report_worker import (
    InvalidJobMessage,
    ReportWorker,
    content_disposition,
    parse_job_message,
    progress_percent,
    run_worker,
)
from yard_reports.services.status_store import StatusStore

_BUCKET = "yard-reports-test"


class FakeRecordSource:
    """Record source serving a fixed list of records."""

    def __init__(
        self,
        records: list[dict[str, Any]],
        *,
        hard_max_rows: int = 1000,
        fail_after: int | None = None,
    ) -> None:
        self.records = records
        self.hard_max_rows = hard_max_rows
        self.tz = ZoneInfo("America/Toronto")
        self.fail_after = fail_after
        self.streamed = 0

    async def count(self, filters: ReportFilters) -> int:
        return min(len(self.records), self.hard_max_rows)

    async def stream(self, filters: ReportFilters) -> AsyncIterator[dict[str, Any]]:
        for index, record in enumerate(self.records):
            if self.fail_after is not None and index == self.fail_after:
                raise ConnectionError("database went away")
            self.streamed += 1
            yield record


def _records(count: int) -> list[dict[str, Any]]:
    return [{"trailer_number": f"T{n}", "type": "IN" if n % 2 else "OUT"} for n in range(1, count + 1)]


def _job(**kwargs: Any) -> ReportJobMessage:
    kwargs.setdefault("format", "csv")
    return ReportJobMessage(job_id=str(uuid.uuid4()), **kwargs)


def _make_worker(
    status_store: StatusStore, storage: S3ObjectStorage, source: FakeRecordSource, **kwargs: Any
) -> ReportWorker:
    return ReportWorker(status_store=status_store, record_source=source, storage=storage, **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def snapshots(status_store: StatusStore, monkeypatch: pytest.MonkeyPatch) -> list[ReportStatus]:
    """Record a copy of every status document written."""
    written: list[ReportStatus] = []
    original_put = status_store.put

    async def recording_put(job_id: str, status: ReportStatus) -> ReportStatus:
        written.append(status.model_copy(deep=True))
        return await original_put(job_id, status)

    monkeypatch.setattr(status_store, "put", recording_put)
    return written


def _object_body(s3_client: Any, key: str) -> bytes:
    return s3_client.get_object(Bucket=_BUCKET, Key=key)["Body"].read()


class TestHelpers:
    """Tests for message parsing and status helpers."""

    def test_progress_percent(self) -> None:
        assert progress_percent(0, 0) == 0
        assert progress_percent(5, 0) == 0
        assert progress_percent(1, 3) == 33
        assert progress_percent(2, 3) == 67
        assert progress_percent(1, 2) == 50
        assert progress_percent(10, 3) == 100

    def test_content_disposition(self) -> None:
        assert content_disposition(None, "csv") is None
        assert content_disposition("yard report", "csv") == 'attachment; filename="yard report.csv"'
        assert content_disposition("report.XLSX", "xlsx") == 'attachment; filename="report.XLSX"'
        assert content_disposition('a"b/c', "csv") == 'attachment; filename="a_b_c.csv"'
        assert content_disposition("///", "csv") is None

    def test_parse_job_message(self) -> None:
        body = json.dumps({"jobId": "abc", "format": "xlsx", "columns": ["trailer"], "yardId": "yard2"})
        job = parse_job_message(body)
        assert job.job_id == "abc"
        assert job.format == ExportFormat.XLSX
        assert job.columns == [ColumnToken.TRAILER]
        assert job.yard_id == "yard2"

    def test_parse_defaults_to_csv(self) -> None:
        assert parse_job_message({"jobId": "abc"}).format == ExportFormat.CSV

    def test_parse_rejects_invalid_json(self) -> None:
        with pytest.raises(InvalidJobMessage, match="not valid JSON"):
            parse_job_message("{not json")

    def test_parse_requires_job_id(self) -> None:
        with pytest.raises(InvalidJobMessage, match="jobId is required in message payload"):
            parse_job_message('{"format": "csv"}')

    def test_parse_rejects_bad_fields(self) -> None:
        with pytest.raises(InvalidJobMessage, match="Invalid report job message"):
            parse_job_message({"jobId": "abc", "format": "pdf"})


class TestReportWorkerProcess:
    """Tests for ReportWorker.process."""

    @pytest.mark.asyncio
    async def test_csv_report_completes(
        self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        source = FakeRecordSource([{"trailer_number": "T1", "type": "IN"}, {"trailer_number": "T2", "type": "OUT"}])
        worker = _make_worker(status_store, storage, source)
        job = _job(columns=["trailer", "movement"])

        result = await worker.process(job)

        key = f"temp-files/movements/reports/{job.job_id}.csv"
        assert _object_body(s3_client, key) == b"Trailer,Movement\nT1,IN\nT2,OUT\n"
        stored = await status_store.get(job.job_id)
        assert stored is not None
        for status in (result, stored):
            assert status.state == JobState.DONE
            assert status.row_count == status.processed == 2
            assert status.total == 2
            assert status.progress_percent == 100
            assert status.download_key == key
            assert status.download_url == f"https://{_BUCKET}.s3.us-east-1.amazonaws.com/{key}"
            assert status.attempts == 1
            assert status.started_at is not None

    @pytest.mark.asyncio
    async def test_default_columns(self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(1)))
        job = _job()

        result = await worker.process(job)

        header = _object_body(s3_client, result.download_key).decode().splitlines()[0]
        assert header.split(",")[:3] == ["Yard", "Trailer", "Movement"]
        assert len(header.split(",")) == 11
        assert result.columns == list(ColumnToken)

    @pytest.mark.asyncio
    async def test_xlsx_report(self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(3)))
        job = _job(format="xlsx", columns=["trailer"], filename="January moves")

        result = await worker.process(job)

        assert result.download_key.endswith(f"{job.job_id}.xlsx")
        obj = s3_client.get_object(Bucket=_BUCKET, Key=result.download_key)
        assert obj["Body"].read().startswith(b"PK")
        assert obj["ContentType"].endswith("spreadsheetml.sheet")

    @pytest.mark.asyncio
    async def test_checkpoints_are_monotonic(
        self,
        storage: S3ObjectStorage,
        status_store: StatusStore,
        snapshots: list[ReportStatus],
    ) -> None:
        worker = _make_worker(
            status_store, storage, FakeRecordSource(_records(10)), checkpoint_rows={ExportFormat.CSV: 3}
        )

        await worker.process(_job())

        processed = [s.processed for s in snapshots]
        assert processed == sorted(processed)
        running = [s for s in snapshots if s.state == JobState.RUNNING]
        assert [s.processed for s in running] == [0, 0, 3, 6, 9]
        assert [s.progress_percent for s in running][2:] == [30, 60, 90]
        assert snapshots[-1].state == JobState.DONE
        assert snapshots[-1].processed == 10

    @pytest.mark.asyncio
    async def test_truncates_at_ceiling(
        self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        source = FakeRecordSource(_records(5), hard_max_rows=3)
        worker = _make_worker(status_store, storage, source)

        result = await worker.process(_job(columns=["trailer"]))

        assert result.state == JobState.DONE
        assert result.row_count == 3
        assert result.total == 3
        assert source.streamed == 3
        assert _object_body(s3_client, result.download_key) == b"Trailer\nT1\nT2\nT3\n"

    @pytest.mark.asyncio
    async def test_empty_result_completes(
        self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        worker = _make_worker(status_store, storage, FakeRecordSource([]))

        result = await worker.process(_job(columns=["trailer"]))

        assert result.state == JobState.DONE
        assert result.row_count == 0
        assert result.progress_percent == 100
        assert _object_body(s3_client, result.download_key) == b"Trailer\n"

    @pytest.mark.asyncio
    async def test_done_job_is_skipped(
        self,
        s3_client: Any,
        storage: S3ObjectStorage,
        status_store: StatusStore,
        snapshots: list[ReportStatus],
    ) -> None:
        job = _job()
        done = ReportStatus(state=JobState.DONE, format=ExportFormat.CSV, row_count=7, processed=7, attempts=1)
        await status_store.put(job.job_id, done)
        snapshots.clear()
        source = FakeRecordSource(_records(3))

        result = await _make_worker(status_store, storage, source).process(job)

        assert result.state == JobState.DONE
        assert result.row_count == 7
        assert snapshots == []
        assert source.streamed == 0
        assert storage.get_bytes(status_store.output_key(job.job_id, "csv")) is None

    @pytest.mark.asyncio
    async def test_failure_marks_error_and_reraises(
        self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(5), fail_after=2))
        job = _job()

        with pytest.raises(ConnectionError, match="database went away"):
            await worker.process(job)

        stored = await status_store.get(job.job_id)
        assert stored is not None
        assert stored.state == JobState.ERROR
        assert stored.error == "database went away"
        assert stored.processed == 2
        assert stored.download_key is None
        assert stored.download_url is None
        assert storage.get_bytes(status_store.output_key(job.job_id, "csv")) is None
        assert not s3_client.list_multipart_uploads(Bucket=_BUCKET).get("Uploads")

    @pytest.mark.asyncio
    async def test_failure_with_retries_left_stays_running(
        self, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(5), fail_after=2))
        job = _job()

        with pytest.raises(ConnectionError):
            await worker.process(job, final_attempt=False)

        stored = await status_store.get(job.job_id)
        assert stored is not None
        assert stored.state == JobState.RUNNING
        assert stored.error == "database went away"
        assert stored.download_key is None

    @pytest.mark.asyncio
    async def test_redelivered_running_job_restarts(self, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        job = _job()
        with pytest.raises(ConnectionError):
            await _make_worker(status_store, storage, FakeRecordSource(_records(5), fail_after=2)).process(
                job, final_attempt=False
            )

        result = await _make_worker(status_store, storage, FakeRecordSource(_records(5))).process(job)

        assert result.state == JobState.DONE
        assert result.attempts == 2
        assert result.row_count == 5
        assert result.error is None

    @pytest.mark.asyncio
    async def test_error_job_is_not_reopened(
        self,
        storage: S3ObjectStorage,
        status_store: StatusStore,
        snapshots: list[ReportStatus],
    ) -> None:
        job = _job()
        failed = ReportStatus(state=JobState.ERROR, format=ExportFormat.CSV, error="boom", attempts=5)
        await status_store.put(job.job_id, failed)
        snapshots.clear()
        source = FakeRecordSource(_records(3))

        result = await _make_worker(status_store, storage, source).process(job)

        assert result.state == JobState.ERROR
        assert result.attempts == 5
        assert snapshots == []
        assert source.streamed == 0

    @pytest.mark.asyncio
    async def test_xlsx_job_keeps_event_loop_responsive(
        self, s3_client: Any, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        real_close = xlsxwriter.Workbook.close

        def slow_close(workbook: xlsxwriter.Workbook) -> None:
            time.sleep(0.5)
            real_close(workbook)

        gaps: list[float] = []
        done = asyncio.Event()

        async def heartbeat() -> None:
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        worker = _make_worker(status_store, storage, FakeRecordSource(_records(50)))
        ticker = asyncio.create_task(heartbeat())
        with patch.object(xlsxwriter.Workbook, "close", autospec=True, side_effect=slow_close):
            result = await worker.process(_job(format="xlsx"))
        done.set()
        await ticker

        assert result.state == JobState.DONE
        assert _object_body(s3_client, result.download_key).startswith(b"PK")
        assert max(gaps) < 0.2

    @pytest.mark.asyncio
    async def test_handle_message(self, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(2)))
        job_id = str(uuid.uuid4())

        result = await worker.handle_message(json.dumps({"jobId": job_id, "format": "csv"}))

        assert result.state == JobState.DONE
        assert result.download_key.endswith(f"{job_id}.csv")


class TestRunWorker:
    """Tests for the queue consumer loop."""

    @pytest.mark.asyncio
    async def test_handled_message_is_acked(self, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        queue = InMemoryJobQueue()
        job_id = str(uuid.uuid4())
        await queue.publish({"jobId": job_id, "format": "csv"})
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(2)))

        handled = await run_worker(worker, queue, wait_seconds=0, once=True)

        assert handled == 1
        assert queue.pending == 0
        assert queue.in_flight == 0
        status = await status_store.get(job_id)
        assert status is not None
        assert status.state == JobState.DONE

    @pytest.mark.asyncio
    async def test_failed_message_is_released(self, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        queue = InMemoryJobQueue()
        await queue.publish({"jobId": str(uuid.uuid4()), "format": "csv"})
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(3), fail_after=1))

        handled = await run_worker(worker, queue, wait_seconds=0, once=True)

        assert handled == 0
        assert queue.pending == 1
        assert queue.in_flight == 0

    @pytest.mark.asyncio
    async def test_job_marked_error_only_on_last_receive(
        self, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        queue = InMemoryJobQueue()
        job_id = str(uuid.uuid4())
        await queue.publish({"jobId": job_id, "format": "csv"})
        worker = _make_worker(status_store, storage, FakeRecordSource(_records(3), fail_after=1))

        await run_worker(worker, queue, wait_seconds=0, max_receives=2, once=True)
        first = await status_store.get(job_id)
        await run_worker(worker, queue, wait_seconds=0, max_receives=2, once=True)
        second = await status_store.get(job_id)

        assert first is not None
        assert first.state == JobState.RUNNING
        assert first.error == "database went away"
        assert second is not None
        assert second.state == JobState.ERROR
        assert second.attempts == 2
        assert queue.pending == 0
        assert queue.in_flight == 0

    @pytest.mark.asyncio
    async def test_message_dropped_after_max_receives(
        self, storage: S3ObjectStorage, status_store: StatusStore
    ) -> None:
        queue = InMemoryJobQueue()
        await queue.publish({"format": "csv"})
        worker = _make_worker(status_store, storage, FakeRecordSource([]))

        for _ in range(2):
            await run_worker(worker, queue, wait_seconds=0, max_receives=2, once=True)

        assert queue.pending == 0
        assert queue.in_flight == 0

    @pytest.mark.asyncio
    async def test_stops_when_event_set(self, storage: S3ObjectStorage, status_store: StatusStore) -> None:
        stop_event = asyncio.Event()
        stop_event.set()
        worker = _make_worker(status_store, storage, FakeRecordSource([]))

        assert await run_worker(worker, InMemoryJobQueue(), wait_seconds=0, stop_event=stop_event) == 0
