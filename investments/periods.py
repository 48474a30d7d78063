"""
Period windows for the investments metrics.

- Month-span windows (`2m`, `3m`, ...) always start on the first day of a month
- Profitability presets (mtd / ytd / 12m / origin) resolved to concrete bounds
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Iterable

from investments.market_data import add_months, is_business_day
from shared.models import PeriodWindow

DEFAULT_WINDOWS = (2, 3, 6, 12)
MIN_WINDOW_MONTHS = 1
MAX_WINDOW_MONTHS = 60

PERIOD_PRESET_LABELS = {
    "mtd": "No mês",
    "ytd": "No ano",
    "12m": "12 meses",
    "origin": "Desde o início",
}


def _to_month_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    months = int(number)
    if months < MIN_WINDOW_MONTHS or months > MAX_WINDOW_MONTHS:
        return None
    return months


def normalize_months(months: Iterable[Any] | None) -> list[int]:
    """Unique, sorted month counts in [1, 60]; defaults when nothing was requested."""
    values = list(months) if months else list(DEFAULT_WINDOWS)
    normalized = {count for count in (_to_month_count(value) for value in values) if count is not None}
    return sorted(normalized)


def build_period_windows(months: Iterable[Any] | None, as_of: date | None = None) -> list[PeriodWindow]:
    end = as_of or date.today()
    windows: list[PeriodWindow] = []
    for count in normalize_months(months):
        start = add_months(end.replace(day=1), -(count - 1))
        windows.append(PeriodWindow(months=count, start=start, end=end, label=f"{count}m"))
    return windows


def first_business_day_of_year(year: int) -> date:
    cursor = date(year, 1, 1)
    while not is_business_day(cursor):
        cursor += timedelta(days=1)
    return cursor


def resolve_profitability_period(
    preset: str,
    as_of: date,
    earliest: date | None = None,
) -> tuple[date, date]:
    """Return (start, end) for a profitability preset; start never exceeds end."""
    if preset == "mtd":
        start = as_of.replace(day=1)
    elif preset == "ytd":
        start = first_business_day_of_year(as_of.year)
    elif preset == "12m":
        start = add_months(as_of, -12) + timedelta(days=1)
    else:
        start = earliest or as_of

    return min(start, as_of), as_of
