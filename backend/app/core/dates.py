"""
Date helpers.

Due dates are date-only values interpreted as UTC midnight; "today" is always
the current UTC calendar date, never the server's local date.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Union

from backend.app.core.exceptions import ValidationError


def today_utc() -> date:
    """Current calendar date in UTC (time-of-day discarded)."""
    return datetime.now(timezone.utc).date()


def parse_date_only(value: Union[str, date, datetime]) -> date:
    """
    Parse a due date.

    Accepts ``date`` objects, ``datetime`` objects (converted to UTC first when
    aware) and ISO strings ("2024-03-15" or "2024-03-15T00:00:00Z").

    Raises:
        ValidationError: if the value cannot be parsed
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return parse_date_only(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ValidationError(f"Invalid date: {value!r}")


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def end_of_month(day: date) -> date:
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=last)


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of shorter months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))
