"""Calendar helpers shared by analytics, reports, budgets and expense stats.

Every range returned here is a half-open ``[start, end)`` pair of dates so
callers can filter with ``expense_date >= start`` and ``expense_date < end``.
"""

import re
from datetime import date, timedelta
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta


_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

DateRange = Tuple[date, date]


class InvalidPeriodError(ValueError):
    pass


def is_valid_month(month: str) -> bool:
    return bool(_MONTH_RE.match(month or ""))


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_range(month: str) -> DateRange:
    """``"2026-02"`` -> ``(2026-02-01, 2026-03-01)``."""
    if not is_valid_month(month):
        raise InvalidPeriodError(f"Invalid month: {month!r}")
    year, mon = (int(p) for p in month.split("-"))
    start = date(year, mon, 1)
    return start, start + relativedelta(months=1)


def time_range_start(time_range: str, today: date) -> date:
    """Start of a dashboard window that ends today (inclusive)."""
    if time_range == "week":
        return today - timedelta(days=7)
    if time_range == "month":
        return today.replace(day=1)
    if time_range == "quarter":
        return today.replace(day=1) - relativedelta(months=3)
    if time_range == "year":
        return date(today.year, 1, 1)
    raise InvalidPeriodError(f"Invalid time range: {time_range!r}")


def dashboard_range(time_range: str, today: date) -> DateRange:
    return time_range_start(time_range, today), today + timedelta(days=1)


def previous_range(current: DateRange) -> DateRange:
    """Window of the same length immediately before ``current``."""
    start, end = current
    return start - (end - start), start


def report_range(
    period: str,
    year: int,
    month: int,
    quarter: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> DateRange:
    if period == "month":
        if not 1 <= month <= 12:
            raise InvalidPeriodError(f"Invalid month: {month}")
        start = date(year, month, 1)
        return start, start + relativedelta(months=1)
    if period == "quarter":
        q = quarter or (month - 1) // 3 + 1
        if not 1 <= q <= 4:
            raise InvalidPeriodError(f"Invalid quarter: {q}")
        start = date(year, (q - 1) * 3 + 1, 1)
        return start, start + relativedelta(months=3)
    if period == "year":
        return date(year, 1, 1), date(year + 1, 1, 1)
    if period == "custom":
        if start_date is None or end_date is None:
            raise InvalidPeriodError("Custom period requires start_date and end_date")
        return custom_range(start_date, end_date)
    raise InvalidPeriodError(f"Invalid period: {period!r}")


def custom_range(start_date: date, end_date: date) -> DateRange:
    if end_date < start_date:
        raise InvalidPeriodError("end_date must not be before start_date")
    return start_date, end_date + timedelta(days=1)


def stats_range(period: str, today: date) -> DateRange:
    """Calendar week (Sunday first), month or year containing ``today``."""
    if period == "week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=7)
    if period == "month":
        start = today.replace(day=1)
        return start, start + relativedelta(months=1)
    if period == "year":
        return date(today.year, 1, 1), date(today.year + 1, 1, 1)
    raise InvalidPeriodError(f"Invalid period: {period!r}")


# months covered by each insight window, and its length in days for averages
INSIGHT_PERIODS = {
    "1month": (1, 30),
    "3months": (3, 90),
    "6months": (6, 180),
    "1year": (12, 365),
}


def insight_ranges(period: str, today: date) -> Tuple[DateRange, DateRange]:
    """Current window ending today and the window of equal months before it.

    ``1year`` starts on the 1st of this month a year ago, so it spans
    thirteen calendar months.
    """
    if period not in INSIGHT_PERIODS:
        raise InvalidPeriodError(f"Invalid period: {period!r}")
    months = INSIGHT_PERIODS[period][0]
    this_month = today.replace(day=1)
    if period == "1year":
        start = this_month - relativedelta(years=1)
        compare_start = this_month - relativedelta(years=2)
    else:
        start = this_month - relativedelta(months=months - 1)
        compare_start = start - relativedelta(months=months)
    return (start, today + timedelta(days=1)), (compare_start, start)


def trend_range(period: str, today: date) -> DateRange:
    if period == "30days":
        start = today - timedelta(days=30)
    elif period == "6months":
        start = today.replace(day=1) - relativedelta(months=5)
    elif period == "12months":
        start = today.replace(day=1) - relativedelta(years=1)
    elif period == "2years":
        start = today.replace(day=1) - relativedelta(years=2)
    else:
        raise InvalidPeriodError(f"Invalid period: {period!r}")
    return start, today + timedelta(days=1)


def iter_days(start: date, end: date):
    d = start
    while d < end:
        yield d
        d += timedelta(days=1)
