"""
Widget models for the investments dashboard cards.

Rendering-agnostic dictionaries; key names follow the dashboard widget
contract (`rootView`, `views`, `details.left/right`, `varText`).
"""

from __future__ import annotations

from typing import Any

from investments.periods import PERIOD_PRESET_LABELS
from investments.profitability import AssetContribution, ProfitabilityReport
from investments.valuation import PatrimonyPoint, PortfolioValuation
from shared.models import FIXED_INCOME_CLASSES

BENCHMARK_NAMES = {
    "cdi": "CDI",
    "selic": "SELIC",
    "ibov": "IBOV",
    "ifix": "IFIX",
}

DETAIL_ROWS_LIMIT = 8


def _group_digits(value: float, decimals: int) -> str:
    text = f"{abs(value):,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_brl(value: float | None) -> str:
    """1234.5 -> 'R$ 1.234,50'."""
    number = float(value or 0.0)
    sign = "-" if number < -0.005 else ""
    return f"{sign}R$ {_group_digits(number, 2)}"


def format_pct(value: float | None, decimals: int = 2, signed: bool = False) -> str:
    """1.5 -> '1,50%'; signed adds '+' for non-negative values."""
    number = float(value or 0.0)
    if abs(number) < 0.5 * 10 ** -decimals:
        number = 0.0
    sign = "-" if number < 0 else ("+" if signed else "")
    return f"{sign}{_group_digits(number, decimals)}%"


def format_alpha(value: float | None) -> str:
    number = float(value or 0.0)
    if abs(number) < 0.005:
        number = 0.0
    sign = "-" if number < 0 else "+"
    return f"Alfa: {sign}{_group_digits(number, 2)} p.p."


def _row(row_id: str, name: str, meta: str, value: str, var_text: str = "") -> dict[str, str]:
    return {"id": row_id, "name": name, "meta": meta, "value": value, "varText": var_text}


# ─── Net worth ─────────────────────────────────────────────────


def build_net_worth_widget(
    valuation: PortfolioValuation,
    series: list[PatrimonyPoint] | None = None,
    periods: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    open_items = [item for item in valuation.assets if item.current_value > 0 or item.quantity > 0]
    rv_items = [item for item in open_items if item.asset_class not in FIXED_INCOME_CLASSES]
    rf_items = [item for item in open_items if item.asset_class in FIXED_INCOME_CLASSES]
    rv_total = sum(item.current_value for item in rv_items)
    rf_total = sum(item.current_value for item in rf_items)

    total = valuation.open_market_value
    total_for_pct = total or 1.0
    pnl = valuation.unrealized_pnl
    pnl_pct = (pnl / valuation.invested_open * 100) if valuation.invested_open > 0 else 0.0

    def class_row(row_id: str, label: str, items: list, amount: float) -> dict[str, str]:
        return _row(row_id, label, f"{len(items)} ativo(s)", format_brl(amount), format_pct(amount / total_for_pct * 100, 1))

    def asset_rows(items: list) -> list[dict[str, str]]:
        ranked = sorted(items, key=lambda item: item.current_value, reverse=True)[:DETAIL_ROWS_LIMIT]
        return [
            _row("", item.name, item.asset_class, format_brl(item.current_value), format_pct(item.unrealized_pnl / item.invested_open * 100 if item.invested_open > 0 else 0.0, signed=True))
            for item in ranked
        ]

    points = [
        {"date": point.date.isoformat(), "value": round(point.value, 2), "invested": round(point.invested, 2)}
        for point in (series or [])
    ]

    return {
        "rootView": "total",
        "chart": {"currency": "BRL", "points": points},
        "periods": periods or [],
        "views": {
            "total": {
                "title": "Patrimônio Total",
                "subtitle": "Consolidado de posições abertas",
                "label": "Valor Atual",
                "value": format_brl(total),
                "variation": f"{'+' if pnl >= 0 else ''}{format_brl(pnl)} ({format_pct(pnl_pct)})",
                "secondaryLabel": "Capital investido",
                "secondaryValue": format_brl(valuation.invested_open),
                "tertiaryLabel": "Realizado (Em caixa)",
                "tertiaryValue": format_brl(valuation.realized_cash),
                "details": {
                    "left": [
                        class_row("renda-variavel", "Renda Variável", rv_items, rv_total),
                        class_row("renda-fixa", "Renda Fixa", rf_items, rf_total),
                    ],
                    "right": [
                        _row("", "Total de Ativos", "Posições em carteira", str(len(open_items))),
                        _row("", "Resultado realizado", "Vendas e proventos", format_brl(valuation.realized_result)),
                    ],
                },
            },
            "renda-variavel": {
                "title": "Renda Variável",
                "subtitle": "Ativos de maior risco e oscilação",
                "label": "Total em RV",
                "value": format_brl(rv_total),
                "variation": f"{format_pct(rv_total / total_for_pct * 100, 1)} da carteira",
                "secondaryLabel": "Quantidade de ativos",
                "secondaryValue": str(len(rv_items)),
                "details": {"left": asset_rows(rv_items), "right": []},
            },
            "renda-fixa": {
                "title": "Renda Fixa",
                "subtitle": "Ativos de previsibilidade e caixa",
                "label": "Total em RF",
                "value": format_brl(rf_total),
                "variation": f"{format_pct(rf_total / total_for_pct * 100, 1)} da carteira",
                "secondaryLabel": "Quantidade de ativos",
                "secondaryValue": str(len(rf_items)),
                "details": {"left": asset_rows(rf_items), "right": []},
            },
        },
    }


# ─── Profitability ─────────────────────────────────────────────


def _contribution_rows(items: list[AssetContribution]) -> list[dict[str, str]]:
    return [
        _row(
            "",
            item.name,
            f"Peso {format_pct(item.weight * 100, 1)}",
            format_pct(item.return_pct, signed=True),
            f"{format_pct(item.contribution, signed=True)} na carteira",
        )
        for item in items[:DETAIL_ROWS_LIMIT]
    ]


def build_profitability_widget(report: ProfitabilityReport) -> dict[str, Any]:
    empty = report.status == "empty"
    return {
        "rootView": "total",
        "period": {
            "preset": report.preset,
            "start": None if empty else report.start.isoformat(),
            "end": None if empty else report.end.isoformat(),
            "label": PERIOD_PRESET_LABELS.get(report.preset, report.preset),
        },
        "chart": {
            "currency": "PERCENT",
            "points": [
                {
                    "date": point.date.isoformat(),
                    "value": round(point.value, 4),
                    "benchmarks": {key: round(value, 4) for key, value in point.benchmarks.items()},
                }
                for point in report.points
            ],
        },
        "views": {
            "total": {
                "title": "Rentabilidade Consolidada",
                "subtitle": "Performance ponderada pelo tempo",
                "label": "Retorno do Período",
                "value": format_pct(report.return_pct),
                "variation": format_alpha(report.alpha),
                "benchmarks": [
                    {"id": key, "name": name, "value": format_pct(report.benchmarks.get(key, 0.0))}
                    for key, name in BENCHMARK_NAMES.items()
                ],
                "details": {
                    "left": _contribution_rows(report.contributions_rv),
                    "right": _contribution_rows(report.contributions_rf),
                },
            },
        },
    }
