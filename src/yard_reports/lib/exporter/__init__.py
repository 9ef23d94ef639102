"""Exporter library: row encoders and column vocabulary for movement reports.

Provides format-specific streaming encoders and a registry keyed by
output format.
"""

import enum
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Protocol

from yard_reports.lib.exporter.columns import (
    COLUMN_LABELS,
    DEFAULT_COLUMNS,
    VALID_COLUMN_TOKENS,
    ColumnToken,
    ColumnValidationError,
    header_labels,
    normalize_columns,
    parse_columns,
    to_row,
)
from yard_reports.lib.exporter.csv_writer import CsvRowEncoder
from yard_reports.lib.exporter.xlsx_writer import XlsxRowEncoder


class ExportFormat(enum.StrEnum):
    """Report output encodings."""

    CSV = "csv"
    XLSX = "xlsx"


class RowEncoder(Protocol):
    """Incremental encoder turning report rows into file bytes."""

    content_type: str
    extension: str

    def header(self) -> bytes: ...

    def encode(self, cells: Sequence[str]) -> bytes: ...

    def finish(self) -> AsyncIterator[bytes]: ...

    def discard(self) -> None: ...


# Format registry mapping format names to encoder factories
_ENCODERS: dict[ExportFormat, Callable[[Sequence[ColumnToken]], RowEncoder]] = {
    ExportFormat.CSV: CsvRowEncoder,
    ExportFormat.XLSX: XlsxRowEncoder,
}

SUPPORTED_FORMATS = [f.value for f in _ENCODERS]


def create_encoder(output_format: ExportFormat | str, columns: Sequence[ColumnToken]) -> RowEncoder:
    """Create the encoder for an output format.

    Args:
        output_format: Output format (csv, xlsx).
        columns: Report column layout.

    Returns:
        A fresh encoder for one report file.

    Raises:
        ValueError: If the format is not supported.
    """
    try:
        fmt = ExportFormat(output_format)
    except ValueError:
        msg = f"Unsupported format: {output_format}. Supported: {SUPPORTED_FORMATS}"
        raise ValueError(msg) from None
    return _ENCODERS[fmt](columns)


__all__ = [
    "COLUMN_LABELS",
    "DEFAULT_COLUMNS",
    "SUPPORTED_FORMATS",
    "VALID_COLUMN_TOKENS",
    "ColumnToken",
    "ColumnValidationError",
    "CsvRowEncoder",
    "ExportFormat",
    "RowEncoder",
    "XlsxRowEncoder",
    "create_encoder",
    "header_labels",
    "normalize_columns",
    "parse_columns",
    "to_row",
]
