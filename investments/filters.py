"""
Filter normalization for the investments metrics layer.

Accepts camelCase (frontend) and snake_case keys plus singular aliases.
A non-object payload or a non-list value for a list filter is a malformed
request and raises FilterValidationError.
"""

from __future__ import annotations

from typing import Any

from investments.market_data import is_iso_date, parse_iso_date
from investments.periods import normalize_months
from shared.models import InvestmentsFilters

GROUP_BY_VALUES = ("day", "month")
PERIOD_PRESETS = ("mtd", "ytd", "12m", "origin")

_LIST_FILTERS = {
    "currencies": ("currencies", "currency"),
    "asset_classes": ("assetClasses", "asset_classes", "assetClass", "asset_class"),
    "statuses": ("statuses", "status"),
    "account_ids": ("accountIds", "account_ids", "accountId", "account_id"),
    "tags": ("tags", "tag"),
}

AVAILABLE_FILTERS = [
    "currencies",
    "assetClasses",
    "statuses",
    "accountIds",
    "tags",
    "periodsMonths",
    "periodPreset",
    "groupBy",
    "asOf",
]


class FilterValidationError(ValueError):
    """Raised when the filters payload has the wrong shape."""


def _first_present(raw: dict[str, Any], keys: tuple[str, ...]) -> tuple[str | None, Any]:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return key, value
    return None, None


def normalize_string_list(value: Any, *, field: str = "value") -> list[str]:
    """Trim, drop empties and de-duplicate while keeping first-seen order."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise FilterValidationError(f"'{field}' must be a list of strings")
    items = [str(item).strip() for item in value if item is not None]
    return list(dict.fromkeys(item for item in items if item))


def normalize_investments_filters(raw: Any = None) -> tuple[InvestmentsFilters, list[int], str]:
    """Return (filters, periods_months, group_by)."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise FilterValidationError("filters must be an object")

    lists: dict[str, list[str]] = {}
    for field, keys in _LIST_FILTERS.items():
        key, value = _first_present(raw, keys)
        if key is not None and key == keys[0] and not isinstance(value, (list, tuple)):
            raise FilterValidationError(f"'{key}' must be a list")
        lists[field] = normalize_string_list(value, field=key or field)

    _, raw_months = _first_present(raw, ("periodsMonths", "periods_months", "periods"))
    if raw_months is not None and not isinstance(raw_months, (list, tuple)):
        raise FilterValidationError("'periodsMonths' must be a list of integers")
    periods_months = normalize_months(raw_months)

    _, raw_group_by = _first_present(raw, ("groupBy", "group_by"))
    group_by = "day" if raw_group_by == "day" else "month"

    _, raw_as_of = _first_present(raw, ("asOf", "as_of"))
    as_of = parse_iso_date(raw_as_of) if isinstance(raw_as_of, str) and is_iso_date(raw_as_of) else None

    _, raw_preset = _first_present(raw, ("periodPreset", "period_preset"))
    preset = str(raw_preset).strip().lower() if raw_preset is not None else "origin"
    if preset not in PERIOD_PRESETS:
        preset = "origin"

    filters = InvestmentsFilters(as_of=as_of, period_preset=preset, **lists)
    return filters, periods_months, group_by
