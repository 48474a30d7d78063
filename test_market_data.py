from datetime import date

from investments.market_data import (
    PricePoint,
    add_months,
    adjust_weekend_date,
    build_adaptive_anchor_dates,
    build_monthly_anchor_dates,
    extract_daily_history,
    is_iso_date,
    is_ticker_like,
    pick_price_for_date,
)


def test_iso_date_and_ticker_shapes():
    assert is_iso_date("2024-02-29")
    assert not is_iso_date("2023-02-29")
    assert not is_iso_date("29/02/2024")

    assert is_ticker_like("petr4")
    assert is_ticker_like("HGLG11")
    assert not is_ticker_like("CDB Banco X")
    assert not is_ticker_like("")


def test_add_months_clamps_day():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 3, 15), -3) == date(2023, 12, 15)
    assert add_months(date(2024, 11, 30), 1) == date(2024, 12, 30)


def test_weekend_adjustment():
    assert adjust_weekend_date(date(2024, 1, 6)) == date(2024, 1, 5)
    assert adjust_weekend_date(date(2024, 1, 7)) == date(2024, 1, 8)
    assert adjust_weekend_date(date(2024, 1, 9)) == date(2024, 1, 9)


def test_extract_daily_history_normalizes_dates_and_deduplicates():
    payload = {
        "results": [
            {
                "historicalDataPrice": [
                    {"date": 1704844800, "close": 30.5},
                    {"date": "2024-01-09", "close": 30.0},
                    {"date": "2024-01-10T00:00:00Z", "close": 31.0},
                    {"date": "", "close": 1.0},
                    {"date": "2024-01-11", "close": "nan?"},
                ]
            }
        ]
    }
    history = extract_daily_history(payload)
    assert history == [PricePoint(date(2024, 1, 9), 30.0), PricePoint(date(2024, 1, 10), 31.0)]
    assert extract_daily_history(None) == []


def test_pick_price_prefers_exact_then_previous_then_next():
    history = [PricePoint(date(2024, 1, 10), 10.0), PricePoint(date(2024, 1, 12), 12.0)]
    assert pick_price_for_date(history, date(2024, 1, 12)).close == 12.0
    assert pick_price_for_date(history, date(2024, 1, 11)).close == 10.0
    assert pick_price_for_date(history, date(2024, 1, 1)).close == 10.0
    assert pick_price_for_date(history, date(2024, 2, 1)).close == 12.0
    assert pick_price_for_date([], date(2024, 2, 1)) is None


def test_anchor_dates_end_on_target_and_respect_cap():
    start, end = date(2022, 1, 15), date(2024, 6, 10)

    adaptive = build_adaptive_anchor_dates(start, end, max_points=24)
    assert adaptive[0] == start
    assert adaptive[-1] == end
    assert len(adaptive) <= 25
    assert adaptive == sorted(adaptive)

    monthly = build_monthly_anchor_dates(start, end, max_points=18)
    assert monthly[0] == start
    assert monthly[-1] == end
    assert len(monthly) <= 19

    assert build_adaptive_anchor_dates(end, end) == [end]
