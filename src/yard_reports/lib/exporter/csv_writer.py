"""Streaming CSV encoder for movement reports."""

import csv
import io
from collections.abc import AsyncIterator, Sequence

from yard_reports.lib.exporter.columns import ColumnToken, header_labels


class CsvRowEncoder:
    """Encode report rows to CSV bytes one line at a time.

    Fields containing a comma, a double quote or a newline are wrapped in
    quotes with embedded quotes doubled; everything else is written as-is.
    Nothing is retained between calls.
    """

    content_type = "text/csv"
    extension = "csv"

    def __init__(self, columns: Sequence[ColumnToken]) -> None:
        self._columns = list(columns)
        self._buffer = io.StringIO()
        self._writer = csv.writer(self._buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)

    def _drain(self) -> bytes:
        text = self._buffer.getvalue()
        self._buffer.seek(0)
        self._buffer.truncate(0)
        return text.encode("utf-8")

    def header(self) -> bytes:
        """Return the header line built from the column display labels."""
        self._writer.writerow(header_labels(self._columns))
        return self._drain()

    def encode(self, cells: Sequence[str]) -> bytes:
        """Return one encoded data line."""
        self._writer.writerow(cells)
        return self._drain()

    async def finish(self) -> AsyncIterator[bytes]:
        """CSV has no trailer; every byte was already returned by encode."""
        return
        yield

    def discard(self) -> None:
        """Nothing to clean up."""
