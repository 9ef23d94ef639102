"""Streaming XLSX encoder for movement reports.

Uses XlsxWriter's ``constant_memory`` mode: each row is flushed to a
temporary worksheet file as soon as it is written, so memory stays flat
regardless of row count.  The zipped workbook only exists once the sheet
is closed, so its bytes are produced by :meth:`XlsxRowEncoder.finish`.
Closing and reading the workbook run in worker threads so a large report
does not stall the event loop.
"""

import asyncio
import shutil
import tempfile
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import xlsxwriter

from yard_reports.lib.exporter.columns import ColumnToken, header_labels

SHEET_NAME = "Movements"
COLUMN_WIDTH = 20
_READ_CHUNK_SIZE = 1024 * 1024


class XlsxRowEncoder:
    """Encode report rows into a single-sheet workbook."""

    content_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    extension = "xlsx"

    def __init__(self, columns: Sequence[ColumnToken], *, tmpdir: str | None = None) -> None:
        self._columns = list(columns)
        self._tmpdir = Path(tempfile.mkdtemp(prefix="yard-report-", dir=tmpdir))
        self._path = self._tmpdir / "report.xlsx"
        self._workbook = xlsxwriter.Workbook(
            str(self._path),
            {
                "constant_memory": True,
                "tmpdir": str(self._tmpdir),
                "strings_to_numbers": False,
                "strings_to_formulas": False,
                "strings_to_urls": False,
            },
        )
        self._sheet = self._workbook.add_worksheet(SHEET_NAME)
        if self._columns:
            self._sheet.set_column(0, len(self._columns) - 1, COLUMN_WIDTH)
        self._next_row = 0

    def header(self) -> bytes:
        """Write the header row; bytes are only produced on finish."""
        self._sheet.write_row(self._next_row, 0, header_labels(self._columns))
        self._next_row += 1
        return b""

    def encode(self, cells: Sequence[str]) -> bytes:
        """Append one data row to the sheet."""
        self._sheet.write_row(self._next_row, 0, list(cells))
        self._next_row += 1
        return b""

    async def finish(self) -> AsyncIterator[bytes]:
        """Close the workbook and yield its bytes in chunks.

        The next chunk is only read once the consumer asks for it, so a
        slow uploader holds back reading instead of buffering the file.
        The temporary directory is removed once the generator is exhausted
        or closed.
        """
        try:
            await asyncio.to_thread(self._workbook.close)
            with self._path.open("rb") as f:
                while chunk := await asyncio.to_thread(f.read, _READ_CHUNK_SIZE):
                    yield chunk
        finally:
            await asyncio.to_thread(self.discard)

    def discard(self) -> None:
        """Remove temporary files without producing output."""
        shutil.rmtree(self._tmpdir, ignore_errors=True)
