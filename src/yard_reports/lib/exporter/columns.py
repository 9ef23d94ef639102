"""Export column vocabulary and row shaping for movement reports."""

import enum
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime, tzinfo
from typing import Any


class ColumnToken(enum.StrEnum):
    """Columns a movement report can contain."""

    YARD = "yard"
    TRAILER = "trailer"
    MOVEMENT = "movement"
    OWNER = "owner"
    STATUS = "status"
    ORDER_NUMBER = "order number"
    TRUCK_NUMBER = "truck number"
    DRIVER = "driver"
    DATE = "date"
    DESTINATION = "destination"
    CUSTOMER_NAME = "customer name"


COLUMN_LABELS: dict[ColumnToken, str] = {
    ColumnToken.YARD: "Yard",
    ColumnToken.TRAILER: "Trailer",
    ColumnToken.MOVEMENT: "Movement",
    ColumnToken.OWNER: "Owner",
    ColumnToken.STATUS: "Status",
    ColumnToken.ORDER_NUMBER: "Order Number",
    ColumnToken.TRUCK_NUMBER: "Truck Number",
    ColumnToken.DRIVER: "Driver",
    ColumnToken.DATE: "Date",
    ColumnToken.DESTINATION: "Destination",
    ColumnToken.CUSTOMER_NAME: "Customer Name",
}

# Default report layout when the request names no columns
DEFAULT_COLUMNS: list[ColumnToken] = list(ColumnToken)

VALID_COLUMN_TOKENS: list[str] = [c.value for c in ColumnToken]

LOAD_STATUS_LABELS: dict[bool, str] = {True: "LOADED", False: "EMPTY"}

DATE_FORMAT = "%Y-%m-%d %H:%M"

# Source record key read for each column (see record_source.EXPORT_FIELDS)
_SOURCE_FIELDS: dict[ColumnToken, str] = {
    ColumnToken.YARD: "yard_id",
    ColumnToken.TRAILER: "trailer_number",
    ColumnToken.MOVEMENT: "type",
    ColumnToken.OWNER: "trailer_owner",
    ColumnToken.ORDER_NUMBER: "trip_order_number",
    ColumnToken.TRUCK_NUMBER: "carrier_truck_number",
    ColumnToken.DRIVER: "carrier_driver_name",
    ColumnToken.DESTINATION: "trip_destination",
    ColumnToken.CUSTOMER_NAME: "trip_customer_name",
}

_SEPARATORS = re.compile(r"[_-]+")


class ColumnValidationError(ValueError):
    """Raised when a report request names columns outside the vocabulary."""

    def __init__(self, unknown: Sequence[str]) -> None:
        self.unknown = list(unknown)
        super().__init__(f"Unknown column(s): {', '.join(self.unknown)}. Valid: {', '.join(VALID_COLUMN_TOKENS)}")


def normalize_token(raw: str) -> str:
    """Canonicalize a column token: trim, lower-case, '_'/'-' runs become a space."""
    return _SEPARATORS.sub(" ", raw.strip().lower())


def parse_columns(raw: str | Iterable[str] | None) -> list[ColumnToken] | None:
    """Parse a comma-separated string or list of column tokens.

    Args:
        raw: Column tokens as sent by the client.

    Returns:
        The tokens in request order, or None when nothing was requested.

    Raises:
        ColumnValidationError: If any token is outside the vocabulary.
    """
    if raw is None:
        return None
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    tokens = [normalize_token(str(item)) for item in items]
    tokens = [t for t in tokens if t]
    if not tokens:
        return None

    unknown = [t for t in tokens if t not in VALID_COLUMN_TOKENS]
    if unknown:
        raise ColumnValidationError(unknown)
    return [ColumnToken(t) for t in tokens]


def normalize_columns(columns: Sequence[ColumnToken | str] | None) -> list[ColumnToken]:
    """Return the requested columns, or the default layout when none were given."""
    if not columns:
        return list(DEFAULT_COLUMNS)
    return [ColumnToken(c) for c in columns]


def header_labels(columns: Sequence[ColumnToken]) -> list[str]:
    """Display labels for a column layout, in the same order."""
    return [COLUMN_LABELS[c] for c in columns]


def format_timestamp(value: Any, tz: tzinfo) -> str:
    """Render a timestamp in the report time zone.

    Naive datetimes are treated as UTC, which is how the database stores them.
    """
    if not isinstance(value, datetime):
        return "" if value is None else str(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(tz).strftime(DATE_FORMAT)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def to_row(columns: Sequence[ColumnToken], record: Mapping[str, Any], tz: tzinfo) -> list[str]:
    """Shape one source record into report cells, in column order.

    Missing fields render as empty strings; this never raises for a
    record that lacks keys.

    Args:
        columns: Output column layout.
        record: Projected movement record.
        tz: Time zone used for the date column.

    Returns:
        One string per column.
    """
    cells: list[str] = []
    for column in columns:
        if column == ColumnToken.STATUS:
            cells.append(LOAD_STATUS_LABELS[bool(record.get("trip_is_loaded"))])
        elif column == ColumnToken.DATE:
            cells.append(format_timestamp(record.get("ts"), tz))
        else:
            cells.append(_text(record.get(_SOURCE_FIELDS[column])))
    return cells
