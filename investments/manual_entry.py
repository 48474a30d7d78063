"""
Manual entry — validation and ledger rows for user-maintained assets.

Every accepted action yields exactly one Transaction and one PositionSnapshot;
the service persists them through the repository.
"""

from __future__ import annotations

import math
import re
import uuid
from datetime import date
from typing import Any

from investments.ledger import LedgerState, replay_until, sort_transactions
from investments.market_data import is_ticker_like, normalize_ticker, parse_iso_date
from shared.models import Asset, Operation, PositionSnapshot, Transaction

DELETE_CONFIRMATION_PHRASE = "APAGAR AGORA"
ASSET_CLASSES = ("equity", "fixed_income", "funds", "crypto", "cash")
EDIT_OPERATIONS = ("add_buy", "add_sell", "add_income", "update_balance")


class ManualEntryError(ValueError):
    """Invalid manual entry payload."""


class AssetNotFoundError(LookupError):
    """Asset does not exist for the user."""


def _pick(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] not in (None, ""):
            return payload[key]
    return None


def _number(payload: dict[str, Any], *keys: str, required: bool = True, positive: bool = True, default: float = 0.0) -> float:
    raw = _pick(payload, *keys)
    if raw is None:
        if required:
            raise ManualEntryError(f"'{keys[0]}' is required")
        return default
    if isinstance(raw, bool):
        raise ManualEntryError(f"'{keys[0]}' must be a number")
    try:
        value = float(str(raw).replace(",", ".")) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        raise ManualEntryError(f"'{keys[0]}' must be a number") from None
    if not math.isfinite(value):
        raise ManualEntryError(f"'{keys[0]}' must be finite")
    if positive and value <= 0:
        raise ManualEntryError(f"'{keys[0]}' must be greater than zero")
    if not positive and value < 0:
        raise ManualEntryError(f"'{keys[0]}' must not be negative")
    return value


def _reference_date(payload: dict[str, Any]) -> date:
    raw = _pick(payload, "referenceDate", "reference_date", "date")
    if raw is None:
        return date.today()
    parsed = parse_iso_date(raw)
    if parsed is None:
        raise ManualEntryError("'referenceDate' must be a YYYY-MM-DD date")
    return parsed


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")[:24] or "asset"


def build_manual_asset(user_id: str, payload: dict[str, Any]) -> Asset:
    if not isinstance(payload, dict):
        raise ManualEntryError("payload must be an object")

    asset_class = str(_pick(payload, "assetClass", "asset_class") or "").strip()
    if asset_class not in ASSET_CLASSES:
        raise ManualEntryError(f"'assetClass' must be one of {', '.join(ASSET_CLASSES)}")

    name = str(_pick(payload, "name") or "").strip()
    if not name:
        raise ManualEntryError("'name' is required")

    ticker = None
    raw_ticker = _pick(payload, "ticker")
    if raw_ticker is not None:
        ticker = normalize_ticker(raw_ticker)
        if not is_ticker_like(ticker):
            raise ManualEntryError(f"'ticker' has an invalid format: {raw_ticker}")

    tags = _pick(payload, "tags") or []
    if not isinstance(tags, list):
        raise ManualEntryError("'tags' must be a list")

    return Asset(
        user_id=user_id,
        asset_id=f"{_slug(ticker or name)}-{uuid.uuid4().hex[:8]}",
        name=name,
        ticker=ticker,
        asset_class=asset_class,
        category=str(_pick(payload, "category") or asset_class),
        currency=str(_pick(payload, "currency") or "BRL").upper(),
        status="open",
        account_id=_pick(payload, "accountId", "account_id"),
        tags=[str(tag).strip() for tag in tags if str(tag).strip()],
        metadata={"source": "manual"},
    )


def _build_transaction(asset: Asset, operation: Operation, payload: dict[str, Any], **fields: Any) -> Transaction:
    return Transaction(
        user_id=asset.user_id,
        asset_id=asset.asset_id,
        reference_date=_reference_date(payload),
        operation=operation,
        currency=asset.currency,
        asset_class=asset.asset_class,
        metadata={"source": "manual", "note": str(_pick(payload, "note") or "")},
        **fields,
    )


def build_create_transaction(asset: Asset, payload: dict[str, Any]) -> Transaction:
    quantity = _number(payload, "quantity")
    price = _number(payload, "avgPrice", "avg_price", "price")
    fees = _number(payload, "fees", required=False, positive=False)
    return _build_transaction(asset, Operation.CREATE, payload, quantity=quantity, price=price, fees=fees)


def build_edit_transaction(
    asset: Asset,
    operation: str,
    payload: dict[str, Any],
    history: list[Transaction],
) -> Transaction:
    """Validate an edit action against the asset's current ledger."""
    if operation not in EDIT_OPERATIONS:
        raise ManualEntryError(f"'operation' must be one of {', '.join(EDIT_OPERATIONS)}")
    if not isinstance(payload, dict):
        raise ManualEntryError("payload must be an object")

    if operation == "add_buy":
        return _build_transaction(
            asset,
            Operation.BUY,
            payload,
            quantity=_number(payload, "quantity"),
            price=_number(payload, "price"),
            fees=_number(payload, "fees", required=False, positive=False),
        )

    if operation == "add_sell":
        tx = _build_transaction(
            asset,
            Operation.SELL,
            payload,
            quantity=_number(payload, "quantity"),
            price=_number(payload, "price"),
            fees=_number(payload, "fees", required=False, positive=False),
        )
        ordered = sort_transactions(history)
        held_then = replay_until(ordered, tx.reference_date).quantity
        held_now = replay_until(ordered, date.max).quantity
        held = min(held_then, held_now)
        if tx.quantity > held + 1e-9:
            raise ManualEntryError(f"Cannot sell {tx.quantity:g}; only {held:g} held")
        return tx

    if operation == "add_income":
        amount = _number(payload, "amount", "grossAmount", "gross_amount")
        return _build_transaction(asset, Operation.INCOME, payload, gross_amount=amount)

    amount = _number(payload, "currentValue", "current_value", "amount", "grossAmount", positive=False)
    return _build_transaction(asset, Operation.BALANCE_UPDATE, payload, gross_amount=amount)


def build_position_snapshot(asset: Asset, tx: Transaction, history: list[Transaction]) -> PositionSnapshot:
    """Position after replaying the full ledger including `tx`."""
    state: LedgerState = replay_until(sort_transactions([*history, tx]), date.max)

    if state.marked_value is not None:
        market_value = state.marked_value
        market_price = market_value / state.quantity if state.quantity > 0 else None
    else:
        market_price = tx.price if tx.operation in (Operation.CREATE, Operation.BUY, Operation.SELL) and tx.price > 0 else None
        if market_price is None:
            market_price = state.avg_cost or None
        market_value = state.quantity * (market_price or 0.0)

    return PositionSnapshot(
        user_id=asset.user_id,
        asset_id=asset.asset_id,
        reference_date=tx.reference_date,
        quantity=state.quantity,
        avg_price=state.avg_cost,
        market_price=market_price,
        invested_amount=state.invested_open,
        market_value=market_value,
        asset_class=asset.asset_class,
        source="manual",
        action_type=tx.operation.value,
    )


def check_delete_confirmation(confirmation: str | None) -> None:
    if confirmation != DELETE_CONFIRMATION_PHRASE:
        raise ManualEntryError(f"Deletion requires the exact confirmation phrase '{DELETE_CONFIRMATION_PHRASE}'")
