"""
Calendar-month arithmetic on plain dates (no timezone).
"""
import calendar
from datetime import date, timedelta
from typing import Iterator


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    last = last_day_of_month(year, month)
    day = min(d.day, last)
    return date(year, month, day)


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=last_day_of_month(d.year, d.month))


def month_key(d: date) -> str:
    """'2024-03', sortable bucket key."""
    return f"{d.year:04d}-{d.month:02d}"


def iter_months(first: date, last: date) -> Iterator[tuple[int, int]]:
    """(year, month) for every calendar month touching [first, last], inclusive."""
    cur = month_start(first)
    stop = month_start(last)
    while cur <= stop:
        yield cur.year, cur.month
        cur = add_months(cur, 1)


def last_business_day(year: int, month: int) -> date:
    """Last Monday–Friday of the month (holidays are not considered)."""
    d = date(year, month, last_day_of_month(year, month))
    while d.weekday() >= 5:
        d -= timedelta(days=1)
    return d
