"""Calendar helpers shared by the scheduling domains"""

from datetime import date, datetime, time, timedelta
from typing import Iterator, Union


def day_of_week(value: Union[date, datetime]) -> int:
    """Day index with 0 = Sunday ... 6 = Saturday"""
    return (value.weekday() + 1) % 7


def hourly_times(start: time, end: time) -> Iterator[str]:
    """Whole-hour appointment times inside a session window, e.g. 08:00, 09:00"""
    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, start)
    stop = datetime.combine(anchor, end)
    if stop <= current:
        stop += timedelta(days=1)

    while current < stop:
        yield current.strftime("%H:%M")
        current += timedelta(hours=1)
