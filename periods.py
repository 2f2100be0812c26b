from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def month_period(month: Union[str, date, Period]) -> Period:
    if isinstance(month, Period):
        return month
    if isinstance(month, date):
        year, month_num = month.year, month.month
    else:
        parts = str(month).split("-")
        if len(parts) < 2:
            raise ValueError(f"Invalid month: {month!r}")
        try:
            year, month_num = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise ValueError(f"Invalid month: {month!r}") from exc
        if not 1 <= month_num <= 12:
            raise ValueError(f"Invalid month: {month!r}")
    return Period(
        f"{year:04d}-{month_num:02d}",
        date(year, month_num, 1),
        month_end(year, month_num),
    )


def months_for_year(year: int) -> list[Period]:
    return [month_period(date(year, m, 1)) for m in range(1, 13)]


def parse_record_date(value: object) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # only plain YYYY-MM-DD; timestamps and partial dates are not usable
    parts = str(value).split("-")
    if len(parts) != 3:
        return None
    try:
        return date(int(parts[0]), int(parts[1]), int(parts[2]))
    except ValueError:
        return None
