"""Month / week calendar grids over dated records. No I/O, no clock reads."""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import MAXYEAR, MINYEAR, date, datetime, timedelta
from types import MappingProxyType
from typing import Any, Protocol

logger = logging.getLogger(__name__)

SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(7)
DAY_ABBR = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

_CAL = calendar.Calendar(firstweekday=calendar.SUNDAY)
_LAST_WEEK_START = date.max - timedelta(days=6)


class InvalidArgument(ValueError):
    pass


class DatedRecord(Protocol):
    date: date


@dataclass(frozen=True)
class Record:
    """A fetched row that carries a calendar date.

    Everything except ``id`` and ``date`` stays in ``payload`` untouched.
    """

    id: int | str
    date: date
    payload: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # 読み取り専用
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> Record:
        if not isinstance(row, Mapping):
            raise InvalidArgument(f"record must be an object, got {type(row).__name__}")
        record_id = row.get("id")
        if isinstance(record_id, bool) or not isinstance(record_id, (int, str)):
            raise InvalidArgument(f"record id must be an integer or string, got {record_id!r}")
        payload = {k: v for k, v in row.items() if k not in ("id", "date")}
        return cls(id=record_id, date=to_date(row.get("date")), payload=payload)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "date": self.date.isoformat(), **self.payload}


@dataclass(frozen=True)
class GridCell:
    day_number: int | None = None
    date: date | None = None
    is_today: bool = False
    is_special_weekday: bool = False
    records: tuple = ()

    @property
    def is_padding(self) -> bool:
        return self.day_number is None


PADDING = GridCell()


@dataclass(frozen=True)
class CalendarGrid:
    year: int
    month: int
    leading_padding: int
    cells: tuple[GridCell, ...]

    @property
    def days(self) -> list[GridCell]:
        return [c for c in self.cells if not c.is_padding]

    def cell(self, day_number: int) -> GridCell:
        n_days = len(self.cells) - self.leading_padding
        if isinstance(day_number, bool) or not isinstance(day_number, int) \
                or not 1 <= day_number <= n_days:
            raise InvalidArgument(f"day_number must be in 1..{n_days}, got {day_number!r}")
        return self.cells[self.leading_padding + day_number - 1]

    def weeks(self) -> list[list[GridCell]]:
        """Rows of seven cells; the last row is right-padded for display."""
        return [[PADDING if d == 0 else self.cell(d) for d in week]
                for week in _CAL.monthdayscalendar(self.year, self.month)]


def to_date(value: Any) -> date:
    """Read a record date: ``date``, ``datetime`` or ISO ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            raise InvalidArgument(f"invalid date {value!r}") from None
    raise InvalidArgument(f"invalid date {value!r}")


def check_year_month(year: int, month: int) -> None:
    if isinstance(year, bool) or not isinstance(year, int) or not MINYEAR <= year <= MAXYEAR:
        raise InvalidArgument(f"year must be an integer in {MINYEAR}..{MAXYEAR}, got {year!r}")
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidArgument(f"month must be an integer in 1..12, got {month!r}")


def _check_weekday(special_weekday: int | None) -> None:
    if special_weekday is None:
        return
    if isinstance(special_weekday, bool) or not isinstance(special_weekday, int) \
            or not SUNDAY <= special_weekday <= SATURDAY:
        raise InvalidArgument(f"special_weekday must be in 0..6, got {special_weekday!r}")


def days_in_month(year: int, month: int) -> int:
    check_year_month(year, month)
    return calendar.monthrange(year, month)[1]


def weekday_index(d: date) -> int:
    """0 = Sunday .. 6 = Saturday."""
    # date.weekday() は月曜 = 0
    return (d.weekday() + 1) % 7


def leading_padding(year: int, month: int) -> int:
    check_year_month(year, month)
    first_weekday = calendar.monthrange(year, month)[0]
    return (first_weekday - _CAL.firstweekday) % 7


def prev_month(year: int, month: int) -> tuple[int, int]:
    check_year_month(year, month)
    if month == 1:
        return year - 1, 12
    return year, month - 1


def next_month(year: int, month: int) -> tuple[int, int]:
    check_year_month(year, month)
    if month == 12:
        return year + 1, 1
    return year, month + 1


def record_date(record: DatedRecord) -> date:
    return to_date(getattr(record, "date", None))


def group_by_date(records: Iterable[DatedRecord]) -> dict[date, list]:
    by_date: dict[date, list] = {}
    for r in records:
        by_date.setdefault(record_date(r), []).append(r)
    return by_date


def _cell(d: date, by_date: dict[date, list], today: date | None,
          special_weekday: int | None) -> GridCell:
    return GridCell(
        day_number=d.day,
        date=d,
        is_today=today is not None and d == today,
        is_special_weekday=special_weekday is not None and weekday_index(d) == special_weekday,
        records=tuple(by_date.get(d, ())),
    )


def build(
    year: int,
    month: int,
    records: Iterable[DatedRecord] = (),
    today: date | None = None,
    special_weekday: int | None = None,
) -> CalendarGrid:
    """Lay out one month, Sunday first.

    The grid starts with ``leading_padding`` empty cells so that day 1 sits
    under its weekday column, followed by one cell per day of the month.
    Each day cell holds the records dated on it, in input order; records
    from other months are dropped.
    """
    check_year_month(year, month)
    _check_weekday(special_weekday)
    if today is not None:
        today = to_date(today)

    # 日付でまとめる (対象月のみ)
    by_date: dict[date, list] = {}
    dropped = 0
    for r in records:
        d = record_date(r)
        if d.year == year and d.month == month:
            by_date.setdefault(d, []).append(r)
        else:
            dropped += 1
    if dropped:
        logger.debug("%d record(s) outside %04d-%02d skipped", dropped, year, month)

    # itermonthdays: 月初前の 0 は空白セル, 月末後の 0 は捨てる
    cells: list[GridCell] = []
    padding = 0
    for day in _CAL.itermonthdays(year, month):
        if day:
            cells.append(_cell(date(year, month, day), by_date, today, special_weekday))
        elif not cells:
            padding += 1
    cells[:0] = [PADDING] * padding
    return CalendarGrid(year=year, month=month, leading_padding=padding, cells=tuple(cells))


def week_start(reference: date) -> date:
    """Monday of the week containing ``reference``; Sunday closes the week."""
    reference = to_date(reference)
    return reference - timedelta(days=reference.weekday())


def build_week(
    reference: date,
    records: Iterable[DatedRecord] = (),
    today: date | None = None,
    special_weekday: int | None = None,
) -> list[GridCell]:
    """Seven cells, Monday to Sunday, for the week containing ``reference``."""
    _check_weekday(special_weekday)
    if today is not None:
        today = to_date(today)
    start = week_start(reference)
    if start > _LAST_WEEK_START:
        raise InvalidArgument(f"week of {reference} runs past {date.max}")
    by_date = group_by_date(records)
    return [_cell(start + timedelta(days=i), by_date, today, special_weekday) for i in range(7)]


def month_name(month: int) -> str:
    check_year_month(MINYEAR, month)
    return calendar.month_name[month]
