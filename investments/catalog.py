"""
Investments metric catalog — handlers for `investments.net_worth` and
`investments.profitability`, registered into an explicit MetricsRegistry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from investments.benchmarks import MonthlySeriesStore, build_daily_benchmark_series
from investments.profitability import compute_profitability, compute_return_pct
from investments.repository import InvestmentsRepository
from investments.valuation import (
    AssetBook,
    PriceResolver,
    build_asset_books,
    build_patrimony_series,
    value_portfolio,
    value_portfolio_sync,
)
from investments.widgets import build_net_worth_widget, build_profitability_widget
from metrics.registry import MetricDefinition, MetricsRegistry
from shared.models import InvestmentsFilters, PeriodWindow

logger = logging.getLogger(__name__)

NET_WORTH_METRIC_ID = "investments.net_worth"
PROFITABILITY_METRIC_ID = "investments.profitability"
DAILY_BENCHMARK_KINDS = ("cdi", "ibov")


@dataclass
class InvestmentsContext:
    """Per-request collaborators handed to every investments metric."""

    user_id: str
    repository: InvestmentsRepository
    price_provider: Any = None
    benchmark_store: MonthlySeriesStore | None = None
    trace_id: str | None = None
    market_data_enabled: bool = True
    anchor_max_points: int = 24


def _resolve_as_of(filters: InvestmentsFilters) -> date:
    return filters.as_of or date.today()


def _load_books(context: InvestmentsContext, filters: InvestmentsFilters, as_of: date) -> list[AssetBook]:
    repo = context.repository
    assets = repo.list_assets(context.user_id, filters)
    transactions = repo.list_transactions(context.user_id, filters, end=as_of)
    positions = repo.list_latest_positions_by_user(context.user_id, filters, end=as_of)
    return build_asset_books(assets, transactions, positions)


def _price_resolver(context: InvestmentsContext) -> PriceResolver:
    return PriceResolver(context.price_provider, enabled=context.market_data_enabled)


async def net_worth_handler(
    context: InvestmentsContext,
    filters: InvestmentsFilters,
    period_windows: list[PeriodWindow],
    group_by: str = "month",
) -> dict[str, Any]:
    as_of = _resolve_as_of(filters)
    books = _load_books(context, filters, as_of)
    prices = _price_resolver(context)

    valuation = await value_portfolio(books, as_of, prices)
    if not valuation.assets:
        return {
            "status": "empty",
            "data": {"widget": build_net_worth_widget(valuation), "summary": _net_worth_summary(valuation)},
            "meta": {"as_of": as_of.isoformat(), "assets": 0},
        }

    series = await build_patrimony_series(
        books,
        as_of,
        prices,
        max_points=context.anchor_max_points,
        group_by=group_by,
    )
    periods = []
    for window in period_windows:
        start_value = value_portfolio_sync(books, window.start, prices).open_market_value
        periods.append(
            {
                "label": window.label,
                "months": window.months,
                "start": window.start.isoformat(),
                "end": window.end.isoformat(),
                "start_value": round(start_value, 2),
                "end_value": round(valuation.open_market_value, 2),
                "change_pct": round(compute_return_pct(start_value, valuation.open_market_value), 4),
            }
        )

    return {
        "status": "ok",
        "data": {
            "widget": build_net_worth_widget(valuation, series, periods),
            "summary": _net_worth_summary(valuation),
        },
        "meta": {"as_of": as_of.isoformat(), "assets": len(valuation.assets), "anchors": len(series)},
    }


def _net_worth_summary(valuation) -> dict[str, float]:
    return {
        "open_market_value": round(valuation.open_market_value, 2),
        "invested_capital": round(valuation.invested_capital, 2),
        "invested_open": round(valuation.invested_open, 2),
        "realized_cash": round(valuation.realized_cash, 2),
        "realized_result": round(valuation.realized_result, 2),
        "realized_cost_basis": round(valuation.realized_cost_basis, 2),
        "unrealized_pnl": round(valuation.unrealized_pnl, 2),
    }


def _daily_benchmarks(store: MonthlySeriesStore, start: date, end: date) -> dict[str, list[dict[str, Any]]]:
    """Business-day CDI/Ibovespa cumulative series, used when grouping by day."""
    return {
        kind: [
            {"date": point.date.isoformat(), "value": round(point.value, 4)}
            for point in build_daily_benchmark_series(store, kind, start, end)
        ]
        for kind in DAILY_BENCHMARK_KINDS
    }


async def profitability_handler(
    context: InvestmentsContext,
    filters: InvestmentsFilters,
    period_windows: list[PeriodWindow],
    group_by: str = "month",
) -> dict[str, Any]:
    as_of = _resolve_as_of(filters)
    books = _load_books(context, filters, as_of)
    report = await compute_profitability(
        books,
        filters.period_preset,
        as_of,
        _price_resolver(context),
        store=context.benchmark_store,
        provider=context.price_provider if context.market_data_enabled else None,
        max_points=context.anchor_max_points,
    )

    data: dict[str, Any] = {
        "widget": build_profitability_widget(report),
        "summary": {
            "return_pct": round(report.return_pct, 4),
            "alpha": round(report.alpha, 4),
            "start_value": round(report.start_value, 2),
            "end_value": round(report.end_value, 2),
            "benchmarks": {key: round(value, 4) for key, value in report.benchmarks.items()},
        },
    }
    if group_by == "day" and report.status == "ok" and context.benchmark_store is not None:
        data["daily_benchmarks"] = _daily_benchmarks(context.benchmark_store, report.start, report.end)

    return {
        "status": report.status,
        "data": data,
        "meta": {
            "preset": report.preset,
            "start": report.start.isoformat(),
            "end": report.end.isoformat(),
            "anchors": len(report.points),
        },
    }


def register_investments_metrics(registry: MetricsRegistry) -> MetricsRegistry:
    registry.register(
        MetricDefinition(
            id=NET_WORTH_METRIC_ID,
            handler=net_worth_handler,
            title="Patrimônio líquido consolidado",
            description="Consolidates open positions and returns the net worth widget model.",
            supported_filters=["currencies", "assetClasses", "statuses", "accountIds", "tags", "periodsMonths", "groupBy", "asOf"],
            output={"kind": "widget"},
            tags=["investments", "dashboard", "patrimonio"],
        )
    )
    registry.register(
        MetricDefinition(
            id=PROFITABILITY_METRIC_ID,
            handler=profitability_handler,
            title="Rentabilidade consolidada",
            description="Period return against CDI, SELIC, IBOV and IFIX with per-asset contributions.",
            supported_filters=["currencies", "assetClasses", "statuses", "accountIds", "tags", "periodPreset", "groupBy", "asOf"],
            output={"kind": "widget"},
            tags=["investments", "dashboard", "rentabilidade"],
        )
    )
    return registry


def build_default_registry() -> MetricsRegistry:
    return register_investments_metrics(MetricsRegistry())