"""Partitioning of an ingestion date range into fixed-width windows."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Union

from compras_rd.errors import IngestionOptionsError

DateLike = Union[str, date]

WINDOW_DAYS = 7


def parse_date(value: DateLike, field: str = "date") -> date:
    """Accept a date or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise IngestionOptionsError(f"Invalid {field} {value!r}; expected YYYY-MM-DD") from e


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date window handed to a release source."""

    start: date
    end: date

    @property
    def date_from(self) -> str:
        return self.start.isoformat()

    @property
    def date_to(self) -> str:
        return self.end.isoformat()

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def iter_windows(start: date, end: date, days: int = WINDOW_DAYS) -> Iterator[DateWindow]:
    """
    Yield consecutive, non-overlapping windows of ``days`` days covering
    [start, end]; the last window is clipped to end.
    """
    if days < 1:
        raise IngestionOptionsError("Window width must be at least one day")
    if end < start:
        raise IngestionOptionsError(f"end date {end} is before start date {start}")
    current = start
    while current <= end:
        window_end = min(current + timedelta(days=days - 1), end)
        yield DateWindow(current, window_end)
        current = window_end + timedelta(days=1)
