"""SQLite-backed store for investment assets, ledger transactions and position snapshots."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone

from shared.models import Asset, InvestmentsFilters, PositionSnapshot, Transaction

logger = logging.getLogger(__name__)


class InvestmentsRepository:
    """Sole writer of persisted investments state. The ledger table is append-only."""

    def __init__(self, db_path: str = "investments.db"):
        self.db_path = db_path
        self._conn = sqlite3.connect(
            db_path,
            check_same_thread=False,
            isolation_level="DEFERRED",
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._init_db()

    def _init_db(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS investment_assets (
                user_id TEXT NOT NULL,
                asset_id TEXT NOT NULL,
                name TEXT NOT NULL,
                ticker TEXT,
                asset_class TEXT NOT NULL,
                status TEXT NOT NULL,
                currency TEXT NOT NULL,
                account_id TEXT,
                asset_json TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, asset_id)
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS investment_transactions (
                sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                asset_id TEXT NOT NULL,
                reference_date TEXT NOT NULL,
                operation TEXT NOT NULL,
                created_at TEXT NOT NULL,
                tx_json TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS investment_positions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                asset_id TEXT NOT NULL,
                reference_date TEXT NOT NULL,
                position_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_investment_transactions_user_asset
            ON investment_transactions(user_id, asset_id, reference_date)
            """
        )
        self._conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_investment_positions_user_asset
            ON investment_positions(user_id, asset_id, reference_date)
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ─── Assets ────────────────────────────────────────────────

    def upsert_asset(self, asset: Asset) -> Asset:
        payload = asset.model_dump(mode="json")
        self._conn.execute(
            """
            INSERT INTO investment_assets
                (user_id, asset_id, name, ticker, asset_class, status, currency, account_id, asset_json, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, asset_id) DO UPDATE SET
                name=excluded.name,
                ticker=excluded.ticker,
                asset_class=excluded.asset_class,
                status=excluded.status,
                currency=excluded.currency,
                account_id=excluded.account_id,
                asset_json=excluded.asset_json,
                updated_at=excluded.updated_at
            """,
            (
                asset.user_id,
                asset.asset_id,
                asset.name,
                asset.ticker,
                asset.asset_class,
                asset.status,
                asset.currency,
                asset.account_id,
                json.dumps(payload, ensure_ascii=False),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self._conn.commit()
        return asset

    def get_asset(self, user_id: str, asset_id: str) -> Asset | None:
        row = self._conn.execute(
            "SELECT asset_json FROM investment_assets WHERE user_id = ? AND asset_id = ?",
            (user_id, asset_id),
        ).fetchone()
        if row is None:
            return None
        return Asset(**json.loads(row["asset_json"]))

    def list_assets(self, user_id: str, filters: InvestmentsFilters | None = None) -> list[Asset]:
        rows = self._conn.execute(
            "SELECT asset_json FROM investment_assets WHERE user_id = ? ORDER BY asset_id ASC",
            (user_id,),
        ).fetchall()
        assets = [Asset(**json.loads(row["asset_json"])) for row in rows]
        if filters is None:
            return assets
        return [asset for asset in assets if _asset_matches(asset, filters)]

    def search_assets(self, user_id: str, query: str = "", limit: int = 20) -> list[Asset]:
        pattern = f"%{str(query or '').strip().lower()}%"
        rows = self._conn.execute(
            """
            SELECT asset_json
            FROM investment_assets
            WHERE user_id = ?
              AND (lower(name) LIKE ? OR lower(coalesce(ticker, '')) LIKE ? OR lower(asset_id) LIKE ?)
            ORDER BY name ASC
            LIMIT ?
            """,
            (user_id, pattern, pattern, pattern, max(1, int(limit))),
        ).fetchall()
        return [Asset(**json.loads(row["asset_json"])) for row in rows]

    def delete_asset(self, user_id: str, asset_id: str) -> bool:
        """Delete an asset and cascade to its transactions and positions."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM investment_assets WHERE user_id = ? AND asset_id = ?",
                (user_id, asset_id),
            )
            tx_cursor = self._conn.execute(
                "DELETE FROM investment_transactions WHERE user_id = ? AND asset_id = ?",
                (user_id, asset_id),
            )
            pos_cursor = self._conn.execute(
                "DELETE FROM investment_positions WHERE user_id = ? AND asset_id = ?",
                (user_id, asset_id),
            )
        deleted = cursor.rowcount > 0
        logger.info(
            "Deleted asset %s for user %s (asset=%s, transactions=%d, positions=%d)",
            asset_id,
            user_id,
            deleted,
            tx_cursor.rowcount,
            pos_cursor.rowcount,
        )
        return deleted

    # ─── Ledger ────────────────────────────────────────────────

    def insert_investment_transaction(self, tx: Transaction) -> Transaction:
        created_at = tx.created_at or datetime.now(timezone.utc).replace(tzinfo=None)
        cursor = self._conn.execute(
            """
            INSERT INTO investment_transactions (user_id, asset_id, reference_date, operation, created_at, tx_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                tx.user_id,
                tx.asset_id,
                tx.reference_date.isoformat(),
                tx.operation.value,
                created_at.isoformat(),
                "{}",
            ),
        )
        stored = tx.model_copy(update={"created_at": created_at, "sequence": int(cursor.lastrowid)})
        self._conn.execute(
            "UPDATE investment_transactions SET tx_json = ? WHERE sequence = ?",
            (json.dumps(stored.model_dump(mode="json"), ensure_ascii=False), stored.sequence),
        )
        self._conn.commit()
        return stored

    def list_transactions(
        self,
        user_id: str,
        filters: InvestmentsFilters | None = None,
        start: date | None = None,
        end: date | None = None,
        asset_id: str | None = None,
    ) -> list[Transaction]:
        """Transactions in replay order: (reference_date, created_at, sequence)."""
        clauses = ["user_id = ?"]
        params: list = [user_id]
        if start is not None:
            clauses.append("reference_date >= ?")
            params.append(start.isoformat())
        if end is not None:
            clauses.append("reference_date <= ?")
            params.append(end.isoformat())
        if asset_id is not None:
            clauses.append("asset_id = ?")
            params.append(asset_id)

        rows = self._conn.execute(
            f"""
            SELECT tx_json
            FROM investment_transactions
            WHERE {' AND '.join(clauses)}
            ORDER BY reference_date ASC, created_at ASC, sequence ASC
            """,
            params,
        ).fetchall()
        transactions = [Transaction(**json.loads(row["tx_json"])) for row in rows]
        return self._filter_by_assets(user_id, transactions, filters)

    # ─── Positions ─────────────────────────────────────────────

    def insert_position_snapshot(self, snapshot: PositionSnapshot) -> PositionSnapshot:
        self._conn.execute(
            """
            INSERT INTO investment_positions (user_id, asset_id, reference_date, position_json, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                snapshot.user_id,
                snapshot.asset_id,
                snapshot.reference_date.isoformat(),
                json.dumps(snapshot.model_dump(mode="json"), ensure_ascii=False),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self._conn.commit()
        return snapshot

    def list_latest_positions_by_user(
        self,
        user_id: str,
        filters: InvestmentsFilters | None = None,
        end: date | None = None,
    ) -> list[PositionSnapshot]:
        """Most recent snapshot per asset with reference_date <= end."""
        params: list = [user_id]
        end_clause = ""
        if end is not None:
            end_clause = "AND reference_date <= ?"
            params.append(end.isoformat())

        rows = self._conn.execute(
            f"""
            SELECT position_json
            FROM investment_positions
            WHERE user_id = ? {end_clause}
            ORDER BY asset_id ASC, reference_date ASC, id ASC
            """,
            params,
        ).fetchall()

        latest: dict[str, PositionSnapshot] = {}
        for row in rows:
            snapshot = PositionSnapshot(**json.loads(row["position_json"]))
            latest[snapshot.asset_id] = snapshot
        return self._filter_by_assets(user_id, list(latest.values()), filters)

    # ─── Filtering ─────────────────────────────────────────────

    def _filter_by_assets(self, user_id: str, rows: list, filters: InvestmentsFilters | None) -> list:
        if filters is None or not _has_asset_filters(filters):
            return rows
        assets = {asset.asset_id: asset for asset in self.list_assets(user_id)}
        kept = []
        for row in rows:
            asset = assets.get(row.asset_id)
            if asset is not None:
                if _asset_matches(asset, filters):
                    kept.append(row)
            elif _row_matches(row, filters):
                kept.append(row)
        return kept


def _has_asset_filters(filters: InvestmentsFilters) -> bool:
    return bool(filters.currencies or filters.asset_classes or filters.statuses or filters.account_ids or filters.tags)


def _asset_matches(asset: Asset, filters: InvestmentsFilters) -> bool:
    if filters.currencies and asset.currency not in filters.currencies:
        return False
    if filters.asset_classes and asset.asset_class not in filters.asset_classes:
        return False
    if filters.statuses and asset.status not in filters.statuses:
        return False
    if filters.account_ids and asset.account_id not in filters.account_ids:
        return False
    if filters.tags and not set(asset.tags) & set(filters.tags):
        return False
    return True


def _row_matches(row: Transaction | PositionSnapshot, filters: InvestmentsFilters) -> bool:
    """Orphan rows (no asset registered) only honor class and currency filters."""
    if filters.statuses or filters.account_ids or filters.tags:
        return False
    if filters.asset_classes and row.asset_class not in filters.asset_classes:
        return False
    currency = getattr(row, "currency", None)
    if filters.currencies and currency is not None and currency not in filters.currencies:
        return False
    return True
