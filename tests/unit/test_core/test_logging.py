"""Unit tests for logging configuration."""

from pathlib import Path

from loguru import logger

from yard_reports.core.logging import job_logger, setup_logging


class TestLogging:
    """Tests for Loguru logging setup."""

    def test_setup_logging_does_not_raise(self) -> None:
        """setup_logging with valid log level does not raise."""
        setup_logging("DEBUG")
        setup_logging("INFO")
        setup_logging("WARNING")

    def test_setup_logging_case_insensitive(self) -> None:
        """setup_logging accepts case-insensitive log levels."""
        setup_logging("info")
        setup_logging("debug")

    def test_file_sink(self, tmp_path: Path) -> None:
        """A log directory gets a rotating file sink."""
        setup_logging("INFO", log_dir=str(tmp_path / "logs"))
        logger.info("file sink check")
        logger.complete()

        log_file = tmp_path / "logs" / "yard-reports.log"
        assert log_file.exists()
        assert "file sink check" in log_file.read_text()
        setup_logging("INFO")

    def test_job_logger_binds_job_id(self, tmp_path: Path) -> None:
        """Records from job_logger carry the job id."""
        setup_logging("INFO", log_dir=str(tmp_path))
        job_logger("job-123").info("started")
        logger.info("no job")
        logger.complete()

        lines = (tmp_path / "yard-reports.log").read_text().splitlines()
        assert "| job-123 |" in lines[0]
        assert "| - |" in lines[1]
        setup_logging("INFO")
