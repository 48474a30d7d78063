"""
Ledger Replay — reconstructs an asset's state as of any date.

The ledger is append-only; nothing here is cached or persisted. Every
"value as of D" call replays the asset's ordered transactions from scratch.

A balance update marks the asset's total value; later buys add their cost to
the mark and sells remove the sold fraction.

Sell over-fill is clamped to the held quantity instead of rejected. Manual
entry already refuses over-sells, so a clamp here only absorbs legacy rows
and rounding drift.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Iterable

from shared.models import Operation, Transaction

logger = logging.getLogger(__name__)

_QTY_EPSILON = 1e-9


@dataclass(frozen=True)
class LedgerState:
    quantity: float = 0.0
    avg_cost: float = 0.0
    realized_cash: float = 0.0
    realized_result: float = 0.0
    realized_cost_basis: float = 0.0
    invested_capital: float = 0.0
    marked_value: float | None = None
    marked_date: date | None = None
    transactions_applied: int = 0

    @property
    def invested_open(self) -> float:
        return self.quantity * self.avg_cost


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Order by (reference_date, created_at, insertion sequence)."""
    return sorted(transactions, key=lambda tx: tx.sort_key)


def _buy_cost(tx: Transaction) -> float:
    if tx.gross_amount is not None:
        return float(tx.gross_amount)
    return tx.quantity * tx.price + tx.fees


def _apply_buy(state: LedgerState, tx: Transaction) -> LedgerState:
    cost = _buy_cost(tx)
    quantity = state.quantity + tx.quantity
    marked_value = state.marked_value + cost if state.marked_value is not None else None
    if quantity <= _QTY_EPSILON:
        return replace(
            state,
            quantity=0.0,
            avg_cost=0.0,
            invested_capital=state.invested_capital + cost,
            marked_value=marked_value,
        )
    avg_cost = (state.quantity * state.avg_cost + cost) / quantity
    return replace(
        state,
        quantity=quantity,
        avg_cost=avg_cost,
        invested_capital=state.invested_capital + cost,
        marked_value=marked_value,
    )


def _apply_sell(state: LedgerState, tx: Transaction) -> LedgerState:
    sold_qty = min(tx.quantity, state.quantity)
    if sold_qty < tx.quantity:
        logger.warning(
            "Sell of %.6f %s on %s exceeds held %.6f; clamping",
            tx.quantity,
            tx.asset_id,
            tx.reference_date.isoformat(),
            state.quantity,
        )

    if tx.gross_amount is not None:
        proceeds = float(tx.gross_amount)
    else:
        proceeds = sold_qty * tx.price - tx.fees
    cost_basis = sold_qty * state.avg_cost

    marked_value = state.marked_value
    if marked_value is not None and state.quantity > _QTY_EPSILON:
        marked_value -= marked_value * (sold_qty / state.quantity)

    quantity = state.quantity - sold_qty
    avg_cost = state.avg_cost
    if quantity <= _QTY_EPSILON:
        quantity = 0.0
        avg_cost = 0.0
        if marked_value is not None:
            marked_value = 0.0

    return replace(
        state,
        quantity=quantity,
        avg_cost=avg_cost,
        marked_value=marked_value,
        realized_cash=state.realized_cash + proceeds,
        realized_result=state.realized_result + (proceeds - cost_basis),
        realized_cost_basis=state.realized_cost_basis + cost_basis,
    )


def _apply_income(state: LedgerState, tx: Transaction) -> LedgerState:
    amount = float(tx.gross_amount or 0.0)
    return replace(
        state,
        realized_cash=state.realized_cash + amount,
        realized_result=state.realized_result + amount,
    )


def _apply_balance_update(state: LedgerState, tx: Transaction) -> LedgerState:
    if tx.gross_amount is not None:
        value = float(tx.gross_amount)
    else:
        value = state.quantity * tx.price
    return replace(state, marked_value=value, marked_date=tx.reference_date)


_HANDLERS: dict[Operation, Callable[[LedgerState, Transaction], LedgerState]] = {
    Operation.CREATE: _apply_buy,
    Operation.BUY: _apply_buy,
    Operation.SELL: _apply_sell,
    Operation.INCOME: _apply_income,
    Operation.BALANCE_UPDATE: _apply_balance_update,
}

_missing = set(Operation) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"Ledger operations without replay handler: {sorted(op.value for op in _missing)}")


def apply_transaction(state: LedgerState, tx: Transaction) -> LedgerState:
    next_state = _HANDLERS[tx.operation](state, tx)
    return replace(next_state, transactions_applied=state.transactions_applied + 1)


def replay_until(transactions: list[Transaction], target_date: date) -> LedgerState:
    """Replay pre-sorted transactions up to and including `target_date`."""
    state = LedgerState()
    for tx in transactions:
        if tx.reference_date > target_date:
            break
        state = apply_transaction(state, tx)
    return state
