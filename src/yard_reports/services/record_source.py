"""Record source: filtered and sorted movement queries for reports.

Provides a capped count and a forward-only async cursor over the same
filter.  Both share one query builder so the progress denominator and
the exported rows always describe the same result set.
"""

from collections.abc import AsyncIterator
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import ColumnElement, Select, and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yard_reports.models.movement import Movement, MovementDamage, Trailer
from yard_reports.schemas.report import ReportFilters

DEFAULT_HARD_MAX_ROWS = 1_000_000
EXPORT_STREAM_BATCH_SIZE = 1000
DEFAULT_PAGE_LIMIT = 20

# Logical sort names accepted from clients
SORT_COLUMNS: dict[str, Any] = {
    "ts": Movement.ts,
    "type": Movement.type,
    "yardId": Movement.yard_id,
    "trailerNumber": Trailer.trailer_number,
    "owner": Trailer.owner,
    "truckNumber": Movement.carrier_truck_number,
    "createdAt": Movement.created_at,
    "updatedAt": Movement.updated_at,
}
DEFAULT_SORT = "ts"

# Fields projected for export rows (keys consumed by lib.exporter.columns.to_row)
EXPORT_FIELDS = (
    Movement.id,
    Movement.yard_id,
    Movement.type,
    Movement.ts,
    Trailer.trailer_number,
    Trailer.owner.label("trailer_owner"),
    Movement.carrier_truck_number,
    Movement.carrier_driver_name,
    Movement.trip_order_number,
    Movement.trip_destination,
    Movement.trip_customer_name,
    Movement.trip_is_loaded,
)

# Fields matched by free-text search
SEARCH_FIELDS = (
    Trailer.trailer_number,
    Trailer.owner,
    Movement.carrier_truck_number,
    Movement.carrier_name,
    Movement.carrier_driver_name,
    Movement.trip_order_number,
    Movement.trip_customer_name,
)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def start_of_day_utc(day: date, tz: tzinfo) -> datetime:
    """UTC instant of local midnight at the start of ``day`` in ``tz``."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)


def day_range_utc(date_from: date | None, date_to: date | None, tz: tzinfo) -> tuple[datetime | None, datetime | None]:
    """Convert an inclusive local day range into a half-open UTC range.

    Returns:
        ``(start, end)`` where rows match ``start <= ts < end``; either
        bound is None when the corresponding day is not given.
    """
    start = start_of_day_utc(date_from, tz) if date_from else None
    end = start_of_day_utc(date_to + timedelta(days=1), tz) if date_to else None
    return start, end


def build_conditions(filters: ReportFilters, tz: tzinfo) -> list[ColumnElement[bool]]:
    """Build WHERE conditions for report filters.

    Args:
        filters: Search and filter criteria.
        tz: Canonical time zone for the day range.

    Returns:
        Conditions to AND together.
    """
    conditions: list[ColumnElement[bool]] = []

    if filters.type:
        conditions.append(Movement.type == filters.type.value)
    if filters.yard_id:
        conditions.append(Movement.yard_id == filters.yard_id.value)

    start, end = day_range_utc(filters.date_from, filters.date_to, tz)
    if start is not None:
        conditions.append(Movement.ts >= start)
    if end is not None:
        conditions.append(Movement.ts < end)

    if filters.has_damage:
        conditions.append(exists().where(MovementDamage.movement_id == Movement.id))
    if filters.new_damage_only:
        conditions.append(
            exists().where(and_(MovementDamage.movement_id == Movement.id, MovementDamage.new_damage.is_(True)))
        )

    q = (filters.q or "").strip()
    if q:
        pattern = f"%{_escape_like(q)}%"
        conditions.append(or_(*(field.ilike(pattern, escape="\\") for field in SEARCH_FIELDS)))

    return conditions


def build_order_by(sort_by: str | None, sort_dir: str | None) -> list[Any]:
    """Single-key sort from the allow-list, with an ``id`` tiebreaker.

    Unknown sort names fall back to ``ts``; any direction other than
    ``asc`` sorts descending.
    """
    column = SORT_COLUMNS.get(sort_by or DEFAULT_SORT, SORT_COLUMNS[DEFAULT_SORT])
    primary = column.asc() if sort_dir == "asc" else column.desc()
    return [primary, Movement.id.asc()]


def compute_window(page: int | None, limit: int | None, hard_max_rows: int) -> tuple[int, int]:
    """Offset and row limit for a request, clipped to the hard ceiling.

    Paging applies only when both ``page`` and ``limit`` are given.  A
    page below 1 reads the first page and a zero limit uses the default
    page size.

    Returns:
        ``(offset, limit)``; a limit of 0 means no rows.
    """
    if page is None or limit is None:
        return 0, hard_max_rows
    page = max(1, page)
    limit = max(1, limit or DEFAULT_PAGE_LIMIT)
    offset = (page - 1) * limit
    if offset >= hard_max_rows:
        return offset, 0
    return offset, min(limit, hard_max_rows - offset)


def _filtered(stmt: Select[Any], filters: ReportFilters, tz: tzinfo) -> Select[Any]:
    stmt = stmt.select_from(Movement).outerjoin(Trailer, Movement.trailer_id == Trailer.id)
    conditions = build_conditions(filters, tz)
    if conditions:
        stmt = stmt.where(*conditions)
    return stmt


class MovementRecordSource:
    """Movement queries for the report worker.

    Args:
        session_factory: Session factory bound to the movements database.
        hard_max_rows: Maximum rows counted or streamed for one report.
        timezone: Canonical time zone name for day filters.
        batch_size: Rows fetched per cursor round trip.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        hard_max_rows: int = DEFAULT_HARD_MAX_ROWS,
        timezone: str = "America/Toronto",
        batch_size: int = EXPORT_STREAM_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self.hard_max_rows = hard_max_rows
        self.tz = ZoneInfo(timezone)
        self._batch_size = batch_size

    def count_query(self, filters: ReportFilters) -> Select[Any]:
        """Query counting matching rows, stopping at the hard ceiling."""
        capped = _filtered(select(Movement.id), filters, self.tz).limit(self.hard_max_rows).subquery()
        return select(func.count()).select_from(capped)

    def export_query(self, filters: ReportFilters) -> Select[Any]:
        """Projected, sorted and windowed query for report rows."""
        offset, limit = compute_window(filters.page, filters.limit, self.hard_max_rows)
        stmt = _filtered(select(*EXPORT_FIELDS), filters, self.tz)
        stmt = stmt.order_by(*build_order_by(filters.sort_by, filters.sort_dir))
        if offset:
            stmt = stmt.offset(offset)
        return stmt.limit(limit)

    async def count(self, filters: ReportFilters) -> int:
        """Number of matching rows, capped at the hard ceiling."""
        async with self._session_factory() as session:
            total = (await session.execute(self.count_query(filters))).scalar_one()
        return min(int(total or 0), self.hard_max_rows)

    async def stream(self, filters: ReportFilters) -> AsyncIterator[dict[str, Any]]:
        """Yield matching rows as dicts, in sort order.

        Uses a server-side cursor fetched in batches so the result set is
        never held in memory.  The iterator is single-use.
        """
        stmt = self.export_query(filters).execution_options(yield_per=self._batch_size)
        async with self._session_factory() as session:
            result = await session.stream(stmt)
            async for partition in result.mappings().partitions(self._batch_size):
                for row in partition:
                    yield dict(row)
