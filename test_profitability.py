import asyncio
import json
import math
from datetime import date

from investments.benchmarks import MonthlySeriesStore
from investments.profitability import compute_profitability, compute_return_pct
from investments.valuation import PriceResolver, build_asset_books
from investments.widgets import build_profitability_widget, format_alpha, format_brl, format_pct
from shared.models import Asset, Operation, Transaction


def _tx(asset_id: str, day: str, operation: Operation, quantity=0.0, price=0.0, asset_class="equity", **extra):
    return Transaction(
        user_id="u1",
        asset_id=asset_id,
        reference_date=date.fromisoformat(day),
        operation=operation,
        quantity=quantity,
        price=price,
        asset_class=asset_class,
        **extra,
    )


def test_return_pct_guards_non_positive_base():
    assert compute_return_pct(0, 100) == 0.0
    assert compute_return_pct(-5, 100) == 0.0
    assert math.isclose(compute_return_pct(100, 110), 10.0)


def test_empty_portfolio_reports_zero_benchmarks():
    async def _run() -> None:
        report = await compute_profitability([], "origin", date(2024, 5, 20), PriceResolver(None))
        assert report.status == "empty"
        assert report.return_pct == 0.0

        widget = build_profitability_widget(report)
        total = widget["views"]["total"]
        assert total["value"] == "0,00%"
        assert [item["value"] for item in total["benchmarks"]] == ["0,00%"] * 4
        assert [item["name"] for item in total["benchmarks"]] == ["CDI", "SELIC", "IBOV", "IFIX"]
        assert widget["period"]["start"] is None

    asyncio.run(_run())


def test_profitability_with_balance_updates_and_cdi_alpha(tmp_path):
    (tmp_path / "taxa_cdi.json").write_text(
        json.dumps({"cdi_historical_performance": [{"ano": 2024, "mensal": {"jan": "1,00%", "fev": "1,00%"}}]}),
        encoding="utf-8",
    )

    async def _run() -> None:
        books = build_asset_books(
            [
                Asset(user_id="u1", asset_id="cdb", name="CDB", asset_class="fixed_income"),
                Asset(user_id="u1", asset_id="fund", name="Fundo", asset_class="funds"),
            ],
            [
                _tx("cdb", "2024-01-01", Operation.CREATE, 1, 1000, asset_class="fixed_income"),
                _tx("cdb", "2024-02-29", Operation.BALANCE_UPDATE, gross_amount=1030, asset_class="fixed_income"),
                _tx("fund", "2024-01-01", Operation.CREATE, 1, 1000, asset_class="funds"),
                _tx("fund", "2024-02-29", Operation.BALANCE_UPDATE, gross_amount=1010, asset_class="funds"),
            ],
        )
        report = await compute_profitability(
            books,
            "origin",
            date(2024, 2, 29),
            PriceResolver(None),
            store=MonthlySeriesStore(tmp_path),
        )

        assert report.status == "ok"
        assert report.start == date(2024, 1, 1)
        assert report.start_value == 2000
        assert report.end_value == 2040
        assert math.isclose(report.return_pct, 2.0)
        assert math.isclose(report.benchmarks["cdi"], 2.01)
        assert math.isclose(report.alpha, 2.0 - 2.01)
        assert report.benchmarks["selic"] == 0.0
        assert report.benchmarks["ifix"] == 0.0

        assert [c.asset_id for c in report.contributions_rf] == ["cdb"]
        assert [c.asset_id for c in report.contributions_rv] == ["fund"]
        assert math.isclose(report.contributions_rf[0].contribution, 1.5)
        assert math.isclose(report.contributions_rv[0].contribution, 0.5)

        widget = build_profitability_widget(report)
        assert widget["views"]["total"]["value"] == "2,00%"
        assert widget["views"]["total"]["variation"] == "Alfa: -0,01 p.p."
        assert widget["chart"]["currency"] == "PERCENT"

    asyncio.run(_run())


def test_brazilian_number_formatting():
    assert format_brl(1234.56) == "R$ 1.234,56"
    assert format_brl(-10) == "-R$ 10,00"
    assert format_pct(0) == "0,00%"
    assert format_pct(-0.001) == "0,00%"
    assert format_pct(12.5, signed=True) == "+12,50%"
    assert format_alpha(1.5) == "Alfa: +1,50 p.p."
