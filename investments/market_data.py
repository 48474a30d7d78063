"""
Market data helpers — dates, tickers, daily histories and anchor dates.

Pure functions shared by valuation, profitability and benchmarks:
- Ticker normalization and shape validation
- Weekend adjustment (Saturday → previous Friday, Sunday → next Monday)
- Normalization of Brapi daily-history payloads into PricePoint lists
- Nearest-available price lookup
- Anchor date sampling for time series
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TICKER_PATTERN = re.compile(r"^[A-Z]{3,6}\d{0,2}$")


@dataclass(frozen=True)
class PricePoint:
    date: date
    close: float


def is_iso_date(value: Any) -> bool:
    if isinstance(value, date):
        return True
    if not _ISO_DATE_PATTERN.match(str(value or "")):
        return False
    try:
        date.fromisoformat(str(value))
    except ValueError:
        return False
    return True


def parse_iso_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (or pass a date through). Returns None when invalid."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not is_iso_date(value):
        return None
    return date.fromisoformat(str(value))


def add_months(value: date, months: int, day: int | None = None) -> date:
    """Shift by whole months, clamping the day to the target month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    target_day = value.day if day is None else day
    if month == 12:
        last_day = 31
    else:
        last_day = (date(year, month + 1, 1) - timedelta(days=1)).day
    return date(year, month, min(target_day, last_day))


def normalize_ticker(value: Any) -> str:
    return str(value or "").strip().upper()


def is_ticker_like(value: Any) -> bool:
    ticker = normalize_ticker(value)
    if not ticker:
        return False
    return bool(_TICKER_PATTERN.match(ticker))


def adjust_weekend_date(value: date) -> date:
    weekday = value.weekday()
    if weekday == 5:
        return value - timedelta(days=1)
    if weekday == 6:
        return value + timedelta(days=1)
    return value


def is_business_day(value: date) -> bool:
    return value.weekday() < 5


def _epoch_to_date(raw: float) -> date:
    seconds = raw / 1000 if raw > 9999999999 else raw
    return datetime.fromtimestamp(seconds, tz=timezone.utc).date()


def normalize_history_entry(entry: Any) -> PricePoint | None:
    if not isinstance(entry, dict):
        return None

    raw_close = None
    for key in ("close", "price", "regularMarketPrice", "value"):
        if entry.get(key) is not None:
            raw_close = entry.get(key)
            break
    try:
        close = float(raw_close)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(close):
        return None

    for key in ("date", "datetime"):
        raw_date = entry.get(key)
        if isinstance(raw_date, (int, float)) and not isinstance(raw_date, bool) and math.isfinite(raw_date):
            return PricePoint(date=_epoch_to_date(float(raw_date)), close=close)

    raw_text = str(entry.get("date") or entry.get("datetime") or "").strip()
    if not raw_text:
        return None
    parsed = parse_iso_date(raw_text)
    if parsed is not None:
        return PricePoint(date=parsed, close=close)
    try:
        return PricePoint(date=datetime.fromisoformat(raw_text.replace("Z", "+00:00")).date(), close=close)
    except ValueError:
        return None


def extract_daily_history(payload: Any) -> list[PricePoint]:
    """Extract a date-sorted, date-unique daily series from a Brapi payload."""
    if not isinstance(payload, dict):
        return []

    results = payload.get("results")
    first = results[0] if isinstance(results, list) and results and isinstance(results[0], dict) else {}
    candidates = [
        first.get("historicalDataPrice"),
        first.get("historicalData"),
        payload.get("historicalDataPrice"),
        payload.get("historicalData"),
        first.get("prices"),
        payload.get("prices"),
    ]
    raw_series = next((item for item in candidates if isinstance(item, list)), [])

    by_date: dict[date, float] = {}
    for entry in raw_series:
        point = normalize_history_entry(entry)
        if point is not None:
            by_date[point.date] = point.close

    return [PricePoint(date=day, close=close) for day, close in sorted(by_date.items())]


def pick_price_for_date(history: list[PricePoint], target: date) -> PricePoint | None:
    """Exact match, else the closest previous quote, else the closest next one."""
    if not history:
        return None

    previous: PricePoint | None = None
    for point in history:
        if point.date == target:
            return point
        if point.date < target:
            previous = point
            continue
        return previous or point
    return previous


def build_monthly_anchor_dates(start: date, end: date, max_points: int = 18) -> list[date]:
    if start >= end:
        return [start]

    month_delta = (end.year - start.year) * 12 + (end.month - start.month)
    step = max(1, math.ceil((month_delta + 1) / max_points))

    result: list[date] = []
    for offset in range(0, month_delta + 1, step):
        cursor = add_months(start, offset)
        if cursor > end:
            break
        result.append(cursor)

    if result[-1] != end:
        result.append(end)
    return list(dict.fromkeys(result))


def build_adaptive_anchor_dates(start: date, end: date, max_points: int = 24) -> list[date]:
    """Evenly spaced anchors (day step), always ending exactly at `end`."""
    if start >= end:
        return [start]

    span_days = max(1, (end - start).days)
    step_days = max(1, math.ceil(span_days / max(2, max_points - 1)))

    dates = [start + timedelta(days=offset) for offset in range(0, span_days + 1, step_days)]
    dates = [item for item in dates if item <= end]
    if dates[-1] != end:
        dates.append(end)
    return list(dict.fromkeys(dates))


def build_business_dates(start: date, end: date) -> list[date]:
    if start > end:
        return []
    days = (end - start).days
    return [start + timedelta(days=offset) for offset in range(days + 1) if is_business_day(start + timedelta(days=offset))]


def count_business_days_in_month(year: int, month: int) -> int:
    first = date(year, month, 1)
    last = add_months(first, 1) - timedelta(days=1)
    return max(1, len(build_business_dates(first, last)))
