"""
Profitability Engine — period return, benchmark alignment and contributions.

Portfolio value at an anchor is open market value plus realized cash, computed
with the same replay and pricing rules as the valuation engine.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from investments.benchmarks import (
    MonthlySeriesStore,
    build_cdi_benchmarks,
    build_ibov_benchmarks,
    build_ifix_benchmarks,
    build_selic_benchmarks,
    flat_series,
    index_series_by_date,
)
from investments.market_data import build_adaptive_anchor_dates
from investments.periods import resolve_profitability_period
from investments.valuation import (
    AssetBook,
    PortfolioValuation,
    PriceResolver,
    earliest_transaction_date,
    prefetch_prices,
    value_portfolio_sync,
)
from shared.models import FIXED_INCOME_CLASSES

logger = logging.getLogger(__name__)

BENCHMARK_IDS = ("cdi", "selic", "ibov", "ifix")


@dataclass(frozen=True)
class AssetContribution:
    asset_id: str
    name: str
    asset_class: str
    group: str
    return_pct: float
    weight: float
    contribution: float


@dataclass(frozen=True)
class ProfitabilityPoint:
    date: date
    value: float
    benchmarks: dict[str, float]


@dataclass(frozen=True)
class ProfitabilityReport:
    status: str
    preset: str
    start: date
    end: date
    return_pct: float = 0.0
    start_value: float = 0.0
    end_value: float = 0.0
    points: list[ProfitabilityPoint] = field(default_factory=list)
    benchmarks: dict[str, float] = field(default_factory=dict)
    alpha: float = 0.0
    contributions_rv: list[AssetContribution] = field(default_factory=list)
    contributions_rf: list[AssetContribution] = field(default_factory=list)


def compute_return_pct(start_value: float, end_value: float) -> float:
    """Percent change; 0 when the base is not positive."""
    if start_value <= 0:
        return 0.0
    return (end_value / start_value - 1) * 100


def classify_group(asset_class: str) -> str:
    return "rf" if asset_class in FIXED_INCOME_CLASSES else "rv"


def compute_contributions(
    start: PortfolioValuation,
    end: PortfolioValuation,
) -> tuple[list[AssetContribution], list[AssetContribution]]:
    """Per-asset return times portfolio weight, ranked descending per group."""
    start_by_asset = start.by_asset()
    base_total = start.total_value if start.total_value > 0 else end.total_value

    rv: list[AssetContribution] = []
    rf: list[AssetContribution] = []
    for item in end.assets:
        before = start_by_asset.get(item.asset_id)
        start_value = before.total_value if before else 0.0
        if start.total_value > 0:
            weight = start_value / base_total
        else:
            weight = item.total_value / base_total if base_total > 0 else 0.0
        asset_return = compute_return_pct(start_value, item.total_value)
        contribution = AssetContribution(
            asset_id=item.asset_id,
            name=item.name,
            asset_class=item.asset_class,
            group=classify_group(item.asset_class),
            return_pct=asset_return,
            weight=weight,
            contribution=asset_return * weight,
        )
        (rf if contribution.group == "rf" else rv).append(contribution)

    rv.sort(key=lambda c: c.contribution, reverse=True)
    rf.sort(key=lambda c: c.contribution, reverse=True)
    return rv, rf


async def build_benchmark_series(
    anchors: list[date],
    start: date,
    end: date,
    store: MonthlySeriesStore | None,
    provider: Any = None,
) -> dict[str, dict[date, float]]:
    if store is not None:
        cdi = build_cdi_benchmarks(store, anchors, start)
        ibov = build_ibov_benchmarks(store, anchors, start)
    else:
        cdi = ibov = flat_series(anchors)
    selic, ifix = await asyncio.gather(
        build_selic_benchmarks(provider, anchors, start, end),
        build_ifix_benchmarks(provider, anchors, start),
    )
    return {
        "cdi": index_series_by_date(cdi),
        "selic": index_series_by_date(selic),
        "ibov": index_series_by_date(ibov),
        "ifix": index_series_by_date(ifix),
    }


def empty_report(preset: str, as_of: date) -> ProfitabilityReport:
    zeros = {key: 0.0 for key in BENCHMARK_IDS}
    return ProfitabilityReport(
        status="empty",
        preset=preset,
        start=as_of,
        end=as_of,
        points=[ProfitabilityPoint(date=as_of, value=0.0, benchmarks=dict(zeros))],
        benchmarks=zeros,
    )


async def compute_profitability(
    books: list[AssetBook],
    preset: str,
    as_of: date,
    prices: PriceResolver,
    store: MonthlySeriesStore | None = None,
    provider: Any = None,
    max_points: int = 24,
) -> ProfitabilityReport:
    earliest = earliest_transaction_date(books)
    if earliest is None or earliest > as_of:
        return empty_report(preset, as_of)

    start, end = resolve_profitability_period(preset, as_of, earliest)
    anchors = build_adaptive_anchor_dates(start, end, max_points=max_points)

    await prefetch_prices(books, prices)
    valuations = [value_portfolio_sync(books, anchor, prices) for anchor in anchors]
    series = await build_benchmark_series(anchors, start, end, store, provider)

    start_value = valuations[0].total_value
    points = [
        ProfitabilityPoint(
            date=anchor,
            value=compute_return_pct(start_value, valuation.total_value),
            benchmarks={key: series[key].get(anchor, 0.0) for key in BENCHMARK_IDS},
        )
        for anchor, valuation in zip(anchors, valuations)
    ]

    final = points[-1]
    rv, rf = compute_contributions(valuations[0], valuations[-1])
    logger.debug(
        "Profitability %s %s..%s: %.4f%% over %d anchors",
        preset,
        start.isoformat(),
        end.isoformat(),
        final.value,
        len(anchors),
    )

    return ProfitabilityReport(
        status="ok",
        preset=preset,
        start=start,
        end=end,
        return_pct=final.value,
        start_value=start_value,
        end_value=valuations[-1].total_value,
        points=points,
        benchmarks=dict(final.benchmarks),
        alpha=final.value - final.benchmarks.get("cdi", 0.0),
        contributions_rv=rv,
        contributions_rf=rf,
    )
