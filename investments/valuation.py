"""
Portfolio Valuation Engine.

Combines ledger replay with point-in-time prices:
1. Equity with a ticker-shaped symbol → market close for the (weekend-adjusted) date
2. Latest position snapshot market price, only from its reference date on
3. Average cost

Non-equity assets with a balance update use the marked value first.
Assets without transactions are valued from their latest snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from investments.ledger import LedgerState, replay_until, sort_transactions
from investments.market_data import (
    PricePoint,
    adjust_weekend_date,
    build_adaptive_anchor_dates,
    build_monthly_anchor_dates,
    extract_daily_history,
    is_ticker_like,
    normalize_ticker,
    pick_price_for_date,
)
from shared.models import Asset, PositionSnapshot, Transaction

logger = logging.getLogger(__name__)


class PriceResolver:
    """Per-request cache of daily histories keyed by ticker."""

    def __init__(self, provider: Any = None, enabled: bool = True):
        self.provider = provider
        self.enabled = enabled and provider is not None
        self._histories: dict[str, list[PricePoint]] = {}

    async def history(self, ticker: str) -> list[PricePoint]:
        symbol = normalize_ticker(ticker)
        if not self.enabled or not is_ticker_like(symbol):
            return []
        if symbol in self._histories:
            return self._histories[symbol]

        try:
            payload = await self.provider.get_quote_history(symbol, interval="1d", range="max")
            history = extract_daily_history(payload)
        except Exception as e:
            logger.warning("Price history for %s unavailable: %s", symbol, e)
            history = []
        self._histories[symbol] = history
        return history

    async def prefetch(self, tickers: Iterable[str]) -> None:
        pending = {normalize_ticker(t) for t in tickers if is_ticker_like(t)} - set(self._histories)
        if pending and self.enabled:
            await asyncio.gather(*(self.history(ticker) for ticker in sorted(pending)))

    def cached_price(self, ticker: str | None, day: date) -> float | None:
        history = self._histories.get(normalize_ticker(ticker))
        if not history:
            return None
        point = pick_price_for_date(history, adjust_weekend_date(day))
        if point is None or point.close <= 0:
            return None
        return point.close


@dataclass
class AssetBook:
    """Everything known about one asset for a request."""

    asset: Asset
    transactions: list[Transaction] = field(default_factory=list)
    snapshot: PositionSnapshot | None = None

    @property
    def uses_market_price(self) -> bool:
        return self.asset.asset_class == "equity" and is_ticker_like(self.asset.ticker)

    @property
    def first_date(self) -> date | None:
        if self.transactions:
            return self.transactions[0].reference_date
        if self.snapshot is not None:
            return self.snapshot.reference_date
        return None


@dataclass(frozen=True)
class AssetValuation:
    asset_id: str
    name: str
    asset_class: str
    ticker: str | None
    quantity: float
    avg_cost: float
    price: float
    price_source: str
    current_value: float
    invested_open: float
    invested_capital: float
    unrealized_pnl: float
    realized_cash: float
    realized_result: float
    realized_cost_basis: float

    @property
    def total_value(self) -> float:
        return self.current_value + self.realized_cash


@dataclass(frozen=True)
class PortfolioValuation:
    as_of: date
    assets: list[AssetValuation]
    open_market_value: float = 0.0
    invested_capital: float = 0.0
    invested_open: float = 0.0
    realized_cash: float = 0.0
    realized_result: float = 0.0
    realized_cost_basis: float = 0.0
    unrealized_pnl: float = 0.0

    @property
    def total_value(self) -> float:
        return self.open_market_value + self.realized_cash

    def by_asset(self) -> dict[str, AssetValuation]:
        return {item.asset_id: item for item in self.assets}


@dataclass(frozen=True)
class PatrimonyPoint:
    date: date
    value: float
    invested: float


def _placeholder_asset(asset_id: str, sample: Transaction | PositionSnapshot) -> Asset:
    return Asset(
        user_id=sample.user_id,
        asset_id=asset_id,
        name=asset_id,
        asset_class=sample.asset_class,
    )


def build_asset_books(
    assets: Iterable[Asset],
    transactions: Iterable[Transaction],
    snapshots: Iterable[PositionSnapshot] = (),
) -> list[AssetBook]:
    """Group ledger rows per asset; transactions come out sorted for replay."""
    books: dict[str, AssetBook] = {asset.asset_id: AssetBook(asset=asset) for asset in assets}

    grouped: dict[str, list[Transaction]] = {}
    for tx in transactions:
        grouped.setdefault(tx.asset_id, []).append(tx)
    for asset_id, items in grouped.items():
        book = books.get(asset_id)
        if book is None:
            book = books[asset_id] = AssetBook(asset=_placeholder_asset(asset_id, items[0]))
        book.transactions = sort_transactions(items)

    for snapshot in snapshots:
        book = books.get(snapshot.asset_id)
        if book is None:
            book = books[snapshot.asset_id] = AssetBook(asset=_placeholder_asset(snapshot.asset_id, snapshot))
        if book.snapshot is None or snapshot.reference_date >= book.snapshot.reference_date:
            book.snapshot = snapshot

    return list(books.values())


def earliest_transaction_date(books: Iterable[AssetBook]) -> date | None:
    dates = [book.first_date for book in books if book.first_date is not None]
    return min(dates) if dates else None


def _resolve_price(book: AssetBook, state: LedgerState, day: date, prices: PriceResolver) -> tuple[float, str]:
    if book.uses_market_price:
        market = prices.cached_price(book.asset.ticker, day)
        if market is not None:
            return market, "market"
    snapshot = book.snapshot
    if snapshot is not None and snapshot.market_price and snapshot.reference_date <= day:
        return float(snapshot.market_price), "snapshot"
    return state.avg_cost, "avg_cost"


def value_asset(book: AssetBook, day: date, prices: PriceResolver) -> AssetValuation | None:
    """Value one asset as of `day`; None when it did not exist yet."""
    asset = book.asset

    if not book.transactions:
        snapshot = book.snapshot
        if snapshot is None or snapshot.reference_date > day:
            return None
        price = snapshot.market_price if snapshot.market_price is not None else snapshot.avg_price
        return AssetValuation(
            asset_id=asset.asset_id,
            name=asset.name,
            asset_class=asset.asset_class,
            ticker=asset.ticker,
            quantity=snapshot.quantity,
            avg_cost=snapshot.avg_price,
            price=float(price or 0.0),
            price_source="snapshot",
            current_value=snapshot.market_value,
            invested_open=snapshot.invested_amount,
            invested_capital=snapshot.invested_amount,
            unrealized_pnl=snapshot.market_value - snapshot.invested_amount,
            realized_cash=0.0,
            realized_result=0.0,
            realized_cost_basis=0.0,
        )

    if book.transactions[0].reference_date > day:
        return None

    state = replay_until(book.transactions, day)
    if not book.uses_market_price and state.marked_value is not None:
        current_value = state.marked_value
        price = current_value / state.quantity if state.quantity > 0 else 0.0
        source = "balance_update"
    else:
        price, source = _resolve_price(book, state, day, prices)
        current_value = state.quantity * price

    return AssetValuation(
        asset_id=asset.asset_id,
        name=asset.name,
        asset_class=asset.asset_class,
        ticker=asset.ticker,
        quantity=state.quantity,
        avg_cost=state.avg_cost,
        price=price,
        price_source=source,
        current_value=current_value,
        invested_open=state.invested_open,
        invested_capital=state.invested_capital,
        unrealized_pnl=current_value - state.invested_open,
        realized_cash=state.realized_cash,
        realized_result=state.realized_result,
        realized_cost_basis=state.realized_cost_basis,
    )


async def prefetch_prices(books: Iterable[AssetBook], prices: PriceResolver) -> None:
    await prices.prefetch(book.asset.ticker for book in books if book.uses_market_price)


def value_portfolio_sync(books: list[AssetBook], day: date, prices: PriceResolver) -> PortfolioValuation:
    """Aggregate valuation assuming histories were already prefetched."""
    items = [item for item in (value_asset(book, day, prices) for book in books) if item is not None]
    return PortfolioValuation(
        as_of=day,
        assets=items,
        open_market_value=sum(item.current_value for item in items),
        invested_capital=sum(item.invested_capital for item in items),
        invested_open=sum(item.invested_open for item in items),
        realized_cash=sum(item.realized_cash for item in items),
        realized_result=sum(item.realized_result for item in items),
        realized_cost_basis=sum(item.realized_cost_basis for item in items),
        unrealized_pnl=sum(item.unrealized_pnl for item in items),
    )


async def value_portfolio(books: list[AssetBook], day: date, prices: PriceResolver) -> PortfolioValuation:
    await prefetch_prices(books, prices)
    return value_portfolio_sync(books, day, prices)


async def build_patrimony_series(
    books: list[AssetBook],
    end: date,
    prices: PriceResolver,
    max_points: int = 24,
    start: date | None = None,
    group_by: str = "day",
) -> list[PatrimonyPoint]:
    """Open market value from the first ledger date to `end`.

    `group_by="month"` samples month-aligned anchors, anything else uses
    evenly spaced day anchors. Both are capped at `max_points`.
    """
    first = start or earliest_transaction_date(books)
    if first is None:
        return []

    first = min(first, end)
    if group_by == "month":
        anchors = build_monthly_anchor_dates(first, end, max_points=max_points)
    else:
        anchors = build_adaptive_anchor_dates(first, end, max_points=max_points)

    await prefetch_prices(books, prices)
    points: list[PatrimonyPoint] = []
    for anchor in anchors:
        valuation = value_portfolio_sync(books, anchor, prices)
        points.append(PatrimonyPoint(date=anchor, value=valuation.open_market_value, invested=valuation.invested_open))
    return points
