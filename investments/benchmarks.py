"""
Benchmark Series Builder — CDI, Ibovespa, Selic and IFIX cumulative returns.

- CDI / Ibovespa: monthly percentage tables compounded over month keys
- Selic: prime-rate episodes compounded as (1 + r)^(days/365)
- IFIX: plain price ratio over a daily history

Every builder degrades to a flat zero series when its data is unavailable.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Protocol

from investments.market_data import (
    add_months,
    adjust_weekend_date,
    build_business_dates,
    count_business_days_in_month,
    extract_daily_history,
    pick_price_for_date,
)
from shared import settings

logger = logging.getLogger(__name__)

MONTH_INDEX_BY_NAME = {
    "jan": 1, "fev": 2, "mar": 3, "abr": 4, "mai": 5, "jun": 6,
    "jul": 7, "ago": 8, "set": 9, "out": 10, "nov": 11, "dez": 12,
}

MONTHLY_SOURCES = {
    "cdi": ("taxa_cdi.json", "cdi_historical_performance"),
    "ibov": ("ibov.json", "ibovespa_historical_performance"),
}

MonthKey = tuple[int, int]


@dataclass(frozen=True)
class SeriesPoint:
    date: date
    value: float
    daily_return: float | None = None


@dataclass(frozen=True)
class PrimeRate:
    date: date
    annual_rate_pct: float


class PriceHistoryProvider(Protocol):
    async def get_quote_history(self, ticker: str, interval: str = "1d", range: str = "max") -> Any: ...

    async def get_prime_rate_history(
        self, country: str = "brazil", start: str | None = None, end: str | None = None
    ) -> Any: ...


def parse_pct(value: Any) -> float | None:
    """'1,07%' -> 1.07. Blank or '-' -> None."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text == "-":
        return None
    try:
        parsed = float(text.replace("%", "").replace(",", "."))
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def to_brapi_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def flat_series(anchor_dates: list[date]) -> list[SeriesPoint]:
    return [SeriesPoint(date=day, value=0.0) for day in anchor_dates]


# ─── Monthly tables (CDI / Ibovespa) ───────────────────────────


def parse_monthly_table(payload: Any, root_key: str) -> dict[MonthKey, float]:
    rows = payload.get(root_key) if isinstance(payload, dict) else None
    monthly: dict[MonthKey, float] = {}
    if not isinstance(rows, list):
        return monthly

    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            year = int(row.get("ano"))
        except (TypeError, ValueError):
            continue
        months = row.get("mensal") or {}
        if not isinstance(months, dict):
            continue
        for name, raw_pct in months.items():
            month = MONTH_INDEX_BY_NAME.get(str(name or "").lower())
            pct = parse_pct(raw_pct)
            if month and pct is not None:
                monthly[(year, month)] = pct
    return monthly


class MonthlySeriesStore:
    """Loads and caches the monthly CDI / Ibovespa tables from JSON files."""

    def __init__(self, data_dir: str | Path | None = None):
        self.data_dir = Path(data_dir or settings.BENCHMARK_DATA_DIR)
        self._cache: dict[str, dict[MonthKey, float]] = {}

    def get(self, kind: str) -> dict[MonthKey, float]:
        kind = kind.lower()
        if kind in self._cache:
            return self._cache[kind]
        if kind not in MONTHLY_SOURCES:
            raise ValueError(f"Unknown monthly benchmark: {kind}")

        file_name, root_key = MONTHLY_SOURCES[kind]
        path = self.data_dir / file_name
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Benchmark table %s unavailable at %s: %s", kind, path, e)
            return {}

        monthly = parse_monthly_table(payload, root_key)
        self._cache[kind] = monthly
        logger.info("Loaded %d monthly %s returns from %s", len(monthly), kind, path)
        return monthly


def iterate_month_keys(start: date, end: date) -> list[MonthKey]:
    if start > end:
        return []
    keys: list[MonthKey] = []
    cursor = start.replace(day=1)
    last = end.replace(day=1)
    while cursor <= last:
        keys.append((cursor.year, cursor.month))
        cursor = add_months(cursor, 1)
    return keys


def cumulative_pct_from_monthly_range(monthly: dict[MonthKey, float], start: date, end: date) -> float:
    """Compound every month touched by [start, end]; months without data count as 0%."""
    factor = 1.0
    for key in iterate_month_keys(start, end):
        pct = monthly.get(key)
        if pct is not None:
            factor *= 1 + pct / 100
    return (factor - 1) * 100


def build_monthly_benchmark(monthly: dict[MonthKey, float], anchor_dates: list[date], start: date) -> list[SeriesPoint]:
    if not monthly:
        return flat_series(anchor_dates)
    return [
        SeriesPoint(date=day, value=cumulative_pct_from_monthly_range(monthly, start, day))
        for day in anchor_dates
    ]


def build_cdi_benchmarks(store: MonthlySeriesStore, anchor_dates: list[date], start: date) -> list[SeriesPoint]:
    return build_monthly_benchmark(store.get("cdi"), anchor_dates, start)


def build_ibov_benchmarks(store: MonthlySeriesStore, anchor_dates: list[date], start: date) -> list[SeriesPoint]:
    return build_monthly_benchmark(store.get("ibov"), anchor_dates, start)


def build_daily_benchmark_series(store: MonthlySeriesStore, kind: str, start: date, end: date) -> list[SeriesPoint]:
    """Spread each month's return geometrically over its business days."""
    if kind.lower() not in MONTHLY_SOURCES:
        return []
    monthly = store.get(kind)

    series: list[SeriesPoint] = []
    cumulative = 1.0
    for day in build_business_dates(start, end):
        month_factor = 1 + monthly.get((day.year, day.month), 0.0) / 100
        business_days = count_business_days_in_month(day.year, day.month)
        daily_factor = month_factor ** (1 / business_days) if month_factor > 0 else 1.0
        cumulative *= daily_factor
        series.append(SeriesPoint(date=day, value=(cumulative - 1) * 100, daily_return=daily_factor - 1))
    return series


# ─── Selic (prime-rate episodes) ───────────────────────────────


def _parse_brapi_date(raw: str) -> date | None:
    parts = raw.split("/")
    if len(parts) != 3:
        return None
    day, month, year = parts
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def parse_prime_rate_response(payload: Any) -> list[PrimeRate]:
    rows: Any = []
    if isinstance(payload, dict):
        rows = payload.get("prime-rate") or payload.get("primeRate") or payload.get("results") or []
    if not isinstance(rows, list):
        return []

    rates: list[PrimeRate] = []
    for item in rows:
        if not isinstance(item, dict):
            continue
        value = parse_pct(item.get("value"))
        parsed = _parse_brapi_date(str(item.get("date") or "").strip())
        if value is None or parsed is None:
            continue
        rates.append(PrimeRate(date=parsed, annual_rate_pct=value))
    return sorted(rates, key=lambda rate: rate.date)


def find_prime_rate_for_date(rates: list[PrimeRate], target: date) -> PrimeRate | None:
    selected = rates[0] if rates else None
    for rate in rates:
        if rate.date <= target:
            selected = rate
    return selected


def cumulative_from_prime_rate(rates: list[PrimeRate], start: date, target: date) -> float:
    if not rates or target <= start:
        return 0.0

    pivots = {start, target}
    pivots.update(rate.date for rate in rates if start < rate.date < target)
    ordered = sorted(pivots)

    factor = 1.0
    for left, right in zip(ordered, ordered[1:]):
        days = (right - left).days
        if days <= 0:
            continue
        rate = find_prime_rate_for_date(rates, left)
        annual = rate.annual_rate_pct if rate else 0.0
        factor *= (1 + annual / 100) ** (days / 365)
    return (factor - 1) * 100


async def build_selic_benchmarks(
    provider: PriceHistoryProvider | None,
    anchor_dates: list[date],
    start: date,
    end: date,
) -> list[SeriesPoint]:
    if provider is None:
        return flat_series(anchor_dates)
    try:
        payload = await provider.get_prime_rate_history(
            country="brazil",
            start=to_brapi_date(start),
            end=to_brapi_date(end),
        )
    except Exception as e:
        logger.warning("Selic history unavailable: %s", e)
        return flat_series(anchor_dates)

    rates = parse_prime_rate_response(payload)
    if not rates:
        return flat_series(anchor_dates)
    return [SeriesPoint(date=day, value=cumulative_from_prime_rate(rates, start, day)) for day in anchor_dates]


# ─── IFIX (price ratio) ────────────────────────────────────────


async def build_ifix_benchmarks(
    provider: PriceHistoryProvider | None,
    anchor_dates: list[date],
    start: date,
) -> list[SeriesPoint]:
    if provider is None:
        return flat_series(anchor_dates)
    try:
        payload = await provider.get_quote_history("IFIX", interval="1d", range="max")
    except Exception as e:
        logger.warning("IFIX history unavailable: %s", e)
        return flat_series(anchor_dates)

    history = extract_daily_history(payload)
    start_quote = pick_price_for_date(history, adjust_weekend_date(start))
    start_price = start_quote.close if start_quote else 0.0
    if start_price <= 0:
        return flat_series(anchor_dates)

    series: list[SeriesPoint] = []
    for day in anchor_dates:
        quote = pick_price_for_date(history, adjust_weekend_date(day))
        price = quote.close if quote else start_price
        value = (price / start_price - 1) * 100
        series.append(SeriesPoint(date=day, value=value if math.isfinite(value) else 0.0))
    return series


def index_series_by_date(series: list[SeriesPoint]) -> dict[date, float]:
    return {point.date: point.value for point in series}
