"""
Calendar helpers for months and days.

Dates are stored as fixed-width, zero-padded strings ("YYYY-MM-DD" for
days, "YYYY-MM" for months). Lexicographic comparison of these strings
matches chronological order, which is what makes the store's range
lookup (month <= date < next month) correct.
"""

import calendar
from datetime import date, timedelta
from typing import Iterable, Mapping, Optional, Union

from financeflow.models.ledger import DailyRecord, DayActivity, FinanceSummary


def date_key(day: date) -> str:
    return day.isoformat()


def parse_date_key(key: str) -> date:
    return date.fromisoformat(key)


def current_month_key(today: date) -> str:
    return f"{today.year:04d}-{today.month:02d}"


def _parse_month_key(month_key: str) -> tuple[int, int]:
    year, month = month_key.split("-")
    return int(year), int(month)


def next_month_key(month_key: str) -> str:
    year, month = _parse_month_key(month_key)
    if month == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{month + 1:02d}"


def month_key_for(year: int, month: int) -> str:
    """month is 1-12."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month}")
    return f"{year:04d}-{month:02d}"


def month_bounds(month_key: str) -> tuple[str, str]:
    """
    Range bounds for all daily records of a month.

    Returns (inclusive lower, exclusive upper). Any "YYYY-MM-DD" of the
    month sorts after "YYYY-MM" and before the next month's key.
    """
    return month_key, next_month_key(month_key)


def previous_day_key(key: str) -> str:
    return date_key(parse_date_key(key) - timedelta(days=1))


def days_in_month(month_key: str) -> list[str]:
    year, month = _parse_month_key(month_key)
    _, last_day = calendar.monthrange(year, month)
    return [date_key(date(year, month, day)) for day in range(1, last_day + 1)]


def is_setup_stale(summary: Optional[FinanceSummary], today: date) -> bool:
    """
    Does the user need to run monthly setup?

    True when there is no summary yet or the summary governs a month
    other than today's.
    """
    if summary is None:
        return True
    return summary.current_month != current_month_key(today)


def day_activity(record: Optional[DailyRecord]) -> DayActivity:
    """Calendar marker for a day."""
    if record is None:
        return DayActivity.NONE

    spending = record.has_spending
    tasks = record.has_tasks
    notes = record.has_notes

    if spending and tasks and notes:
        return DayActivity.ALL
    if spending and tasks:
        return DayActivity.SPENDING_AND_TASKS
    if spending and notes:
        return DayActivity.SPENDING_AND_NOTES
    if tasks and notes:
        return DayActivity.TASKS_AND_NOTES
    if spending:
        return DayActivity.SPENDING
    if tasks:
        return DayActivity.TASKS
    if notes:
        return DayActivity.NOTES
    return DayActivity.NONE


def month_calendar(
    records: Union[Mapping[str, DailyRecord], Iterable[DailyRecord]],
    month_key: str,
) -> dict[str, DayActivity]:
    """Activity marker for every day of a month, keyed by date."""
    if isinstance(records, Mapping):
        by_date = dict(records)
    else:
        by_date = {record.date: record for record in records}
    return {day: day_activity(by_date.get(day)) for day in days_in_month(month_key)}
