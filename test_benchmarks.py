import asyncio
import json
import math
from datetime import date
from unittest.mock import AsyncMock

import httpx

from investments.benchmarks import (
    MonthlySeriesStore,
    build_cdi_benchmarks,
    build_daily_benchmark_series,
    build_ifix_benchmarks,
    build_selic_benchmarks,
    cumulative_from_prime_rate,
    cumulative_pct_from_monthly_range,
    parse_monthly_table,
    parse_pct,
    parse_prime_rate_response,
)


def _write_tables(tmp_path) -> MonthlySeriesStore:
    (tmp_path / "taxa_cdi.json").write_text(
        json.dumps(
            {
                "cdi_historical_performance": [
                    {"ano": 2024, "mensal": {"jan": "0,97%", "fev": "0,80%", "mar": "0,83%", "abr": "0,89%"}},
                ]
            }
        ),
        encoding="utf-8",
    )
    (tmp_path / "ibov.json").write_text(
        json.dumps(
            {
                "ibovespa_historical_performance": [
                    {"ano": 2024, "mensal": {"jan": "-4,79%", "fev": "0,99%", "mar": "-0,71%", "abr": "-"}},
                ]
            }
        ),
        encoding="utf-8",
    )
    return MonthlySeriesStore(tmp_path)


def test_parse_pct_handles_comma_decimals_and_blanks():
    assert parse_pct("1,07%") == 1.07
    assert parse_pct("-0,5%") == -0.5
    assert parse_pct("-") is None
    assert parse_pct("") is None
    assert parse_pct(None) is None


def test_parse_monthly_table_skips_invalid_rows():
    table = parse_monthly_table(
        {"root": [{"ano": "x"}, {"ano": 2023, "mensal": {"dez": "0,90%", "foo": "1%"}}, "junk"]},
        "root",
    )
    assert table == {(2023, 12): 0.9}


def test_cdi_compounding_is_associative_across_month_boundary(tmp_path):
    monthly = _write_tables(tmp_path).get("cdi")

    whole = cumulative_pct_from_monthly_range(monthly, date(2024, 1, 1), date(2024, 4, 30))
    first = cumulative_pct_from_monthly_range(monthly, date(2024, 1, 1), date(2024, 2, 29))
    second = cumulative_pct_from_monthly_range(monthly, date(2024, 3, 1), date(2024, 4, 30))
    chained = ((1 + first / 100) * (1 + second / 100) - 1) * 100

    assert math.isclose(whole, chained, rel_tol=1e-12)
    assert math.isclose(whole, (1.0097 * 1.008 * 1.0083 * 1.0089 - 1) * 100, rel_tol=1e-12)


def test_missing_month_counts_as_zero(tmp_path):
    monthly = _write_tables(tmp_path).get("ibov")
    through_march = cumulative_pct_from_monthly_range(monthly, date(2024, 1, 1), date(2024, 3, 31))
    through_april = cumulative_pct_from_monthly_range(monthly, date(2024, 1, 1), date(2024, 4, 30))
    assert math.isclose(through_march, through_april)


def test_missing_table_degrades_to_flat_series(tmp_path):
    store = MonthlySeriesStore(tmp_path / "nowhere")
    anchors = [date(2024, 1, 1), date(2024, 2, 1)]
    series = build_cdi_benchmarks(store, anchors, date(2024, 1, 1))
    assert [point.value for point in series] == [0.0, 0.0]


def test_daily_series_compounds_to_monthly_return(tmp_path):
    store = _write_tables(tmp_path)
    series = build_daily_benchmark_series(store, "cdi", date(2024, 1, 1), date(2024, 1, 31))
    assert all(point.date.weekday() < 5 for point in series)
    assert math.isclose(series[-1].value, 0.97, rel_tol=1e-9)
    assert build_daily_benchmark_series(store, "unknown", date(2024, 1, 1), date(2024, 1, 31)) == []


def test_prime_rate_pivots_compound_by_calendar_days():
    rates = parse_prime_rate_response(
        {
            "prime-rate": [
                {"date": "01/02/2024", "value": "11.25"},
                {"date": "01/01/2024", "value": "11.75"},
                {"date": "bad", "value": "1"},
            ]
        }
    )
    assert [rate.date for rate in rates] == [date(2024, 1, 1), date(2024, 2, 1)]

    value = cumulative_from_prime_rate(rates, date(2024, 1, 1), date(2024, 3, 1))
    expected = ((1.1175 ** (31 / 365)) * (1.1125 ** (29 / 365)) - 1) * 100
    assert math.isclose(value, expected, rel_tol=1e-12)
    assert cumulative_from_prime_rate(rates, date(2024, 3, 1), date(2024, 3, 1)) == 0.0


def test_selic_falls_back_to_flat_on_provider_error():
    async def _run() -> None:
        provider = AsyncMock()
        provider.get_prime_rate_history.side_effect = httpx.ConnectError("offline")
        anchors = [date(2024, 1, 1), date(2024, 1, 15)]
        series = await build_selic_benchmarks(provider, anchors, date(2024, 1, 1), date(2024, 1, 15))
        assert [point.value for point in series] == [0.0, 0.0]

        provider.get_prime_rate_history.assert_awaited_once_with(
            country="brazil", start="01/01/2024", end="15/01/2024"
        )

    asyncio.run(_run())


def test_ifix_uses_price_ratio_and_flat_fallback():
    async def _run() -> None:
        provider = AsyncMock()
        provider.get_quote_history.return_value = {
            "results": [
                {
                    "historicalDataPrice": [
                        {"date": "2024-01-02", "close": 100.0},
                        {"date": "2024-01-05", "close": 110.0},
                    ]
                }
            ]
        }
        anchors = [date(2024, 1, 2), date(2024, 1, 6)]
        series = await build_ifix_benchmarks(provider, anchors, date(2024, 1, 2))
        assert series[0].value == 0.0
        assert math.isclose(series[1].value, 10.0)

        provider.get_quote_history.return_value = {"results": []}
        flat = await build_ifix_benchmarks(provider, anchors, date(2024, 1, 2))
        assert [point.value for point in flat] == [0.0, 0.0]

        assert [p.value for p in await build_ifix_benchmarks(None, anchors, date(2024, 1, 2))] == [0.0, 0.0]

    asyncio.run(_run())
