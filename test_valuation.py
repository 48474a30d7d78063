import asyncio
from datetime import date
from unittest.mock import AsyncMock

from investments.valuation import (
    PriceResolver,
    build_asset_books,
    build_patrimony_series,
    value_asset,
    value_portfolio,
)
from shared.models import Asset, Operation, PositionSnapshot, Transaction


def _asset(asset_id: str, asset_class: str = "equity", ticker: str | None = None) -> Asset:
    return Asset(user_id="u1", asset_id=asset_id, name=asset_id.upper(), ticker=ticker, asset_class=asset_class)


def _tx(asset_id: str, day: str, operation: Operation, quantity=0.0, price=0.0, **extra) -> Transaction:
    return Transaction(
        user_id="u1",
        asset_id=asset_id,
        reference_date=date.fromisoformat(day),
        operation=operation,
        quantity=quantity,
        price=price,
        **extra,
    )


def _provider(closes: dict[str, float]) -> AsyncMock:
    provider = AsyncMock()
    provider.get_quote_history.return_value = {
        "results": [{"historicalDataPrice": [{"date": day, "close": close} for day, close in closes.items()]}]
    }
    return provider


def test_equity_uses_market_price_for_weekend_adjusted_date():
    async def _run() -> None:
        books = build_asset_books(
            [_asset("petr4", ticker="PETR4")],
            [_tx("petr4", "2024-01-02", Operation.BUY, 100, 10)],
        )
        prices = PriceResolver(_provider({"2024-01-05": 12.0, "2024-01-08": 13.0}))
        valuation = await value_portfolio(books, date(2024, 1, 6), prices)

        item = valuation.by_asset()["petr4"]
        assert item.price == 12.0
        assert item.price_source == "market"
        assert item.current_value == 1200
        assert item.unrealized_pnl == 200

    asyncio.run(_run())


def test_price_falls_back_to_snapshot_then_average_cost():
    async def _run() -> None:
        provider = AsyncMock()
        provider.get_quote_history.side_effect = RuntimeError("down")
        snapshot = PositionSnapshot(
            user_id="u1", asset_id="vale3", reference_date=date(2024, 1, 3), quantity=10, market_price=70.0
        )
        books = build_asset_books(
            [_asset("vale3", ticker="VALE3"), _asset("itsa4", ticker="ITSA4")],
            [
                _tx("vale3", "2024-01-02", Operation.BUY, 10, 60),
                _tx("itsa4", "2024-01-02", Operation.BUY, 5, 9),
            ],
            [snapshot],
        )
        valuation = await value_portfolio(books, date(2024, 1, 10), PriceResolver(provider))
        by_asset = valuation.by_asset()
        assert (by_asset["vale3"].price, by_asset["vale3"].price_source) == (70.0, "snapshot")
        assert (by_asset["itsa4"].price, by_asset["itsa4"].price_source) == (9.0, "avg_cost")

    asyncio.run(_run())


def test_non_equity_uses_balance_update_mark():
    books = build_asset_books(
        [_asset("cdb", asset_class="fixed_income")],
        [
            _tx("cdb", "2024-01-02", Operation.CREATE, 1, 1000, asset_class="fixed_income"),
            _tx("cdb", "2024-03-01", Operation.BALANCE_UPDATE, gross_amount=1050, asset_class="fixed_income"),
        ],
    )
    prices = PriceResolver(None)
    before = value_asset(books[0], date(2024, 2, 1), prices)
    after = value_asset(books[0], date(2024, 3, 2), prices)
    assert before.current_value == 1000
    assert after.current_value == 1050
    assert after.price_source == "balance_update"
    assert value_asset(books[0], date(2023, 12, 31), prices) is None


def test_asset_without_transactions_uses_snapshot():
    snapshot = PositionSnapshot(
        user_id="u1",
        asset_id="legacy",
        reference_date=date(2024, 1, 3),
        quantity=2,
        avg_price=50,
        market_price=55,
        invested_amount=100,
        market_value=110,
        asset_class="funds",
    )
    books = build_asset_books([], [], [snapshot])
    item = value_asset(books[0], date(2024, 2, 1), PriceResolver(None))
    assert books[0].asset.name == "legacy"
    assert item.current_value == 110
    assert item.unrealized_pnl == 10


def test_sold_asset_keeps_realized_cash_in_total_value():
    async def _run() -> None:
        books = build_asset_books(
            [_asset("bbas3", ticker="BBAS3")],
            [
                _tx("bbas3", "2024-01-02", Operation.BUY, 10, 20),
                _tx("bbas3", "2024-02-01", Operation.SELL, 10, 25),
            ],
        )
        valuation = await value_portfolio(books, date(2024, 3, 1), PriceResolver(None))
        assert valuation.open_market_value == 0
        assert valuation.realized_cash == 250
        assert valuation.total_value == 250

    asyncio.run(_run())


def test_patrimony_series_samples_anchors_until_end():
    async def _run() -> None:
        books = build_asset_books(
            [_asset("cash", asset_class="cash")],
            [_tx("cash", "2024-01-01", Operation.CREATE, 1, 500, asset_class="cash")],
        )
        points = await build_patrimony_series(books, date(2024, 6, 30), PriceResolver(None), max_points=6, group_by="month")
        assert points[0].date == date(2024, 1, 1)
        assert points[-1].date == date(2024, 6, 30)
        assert all(point.value == 500 for point in points)
        assert await build_patrimony_series([], date(2024, 6, 30), PriceResolver(None)) == []

    asyncio.run(_run())


def test_snapshot_price_is_ignored_before_its_reference_date():
    snapshot = PositionSnapshot(
        user_id="u1", asset_id="vale3", reference_date=date(2024, 3, 1), quantity=20, market_price=80.0
    )
    books = build_asset_books(
        [_asset("vale3", ticker="VALE3")],
        [
            _tx("vale3", "2024-01-02", Operation.BUY, 10, 60),
            _tx("vale3", "2024-03-01", Operation.BUY, 10, 80),
        ],
        [snapshot],
    )
    prices = PriceResolver(None)

    before = value_asset(books[0], date(2024, 2, 1), prices)
    assert (before.price, before.price_source, before.current_value) == (60.0, "avg_cost", 600.0)

    after = value_asset(books[0], date(2024, 3, 1), prices)
    assert (after.price, after.price_source, after.current_value) == (80.0, "snapshot", 1600.0)
