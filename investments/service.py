"""
InvestmentsMetricsService — public query surface for investments data.

Responsibility:
- Manifest (capabilities, filters, registered metrics)
- Metric and card queries (filters → period windows → metrics engine)
- Manual asset lifecycle (create, edit, delete, search)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from investments.benchmarks import MonthlySeriesStore
from investments.catalog import InvestmentsContext, build_default_registry
from investments.filters import AVAILABLE_FILTERS, normalize_investments_filters
from investments.manual_entry import (
    AssetNotFoundError,
    ManualEntryError,
    build_create_transaction,
    build_edit_transaction,
    build_manual_asset,
    build_position_snapshot,
    check_delete_confirmation,
)
from investments.periods import DEFAULT_WINDOWS, build_period_windows
from investments.repository import InvestmentsRepository
from metrics.engine import MetricsEngine
from metrics.registry import MetricsRegistry
from observability.logger import Observability
from shared import settings
from shared.models import CardResult, MetricResult

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0.0"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def card_status(metrics: list[MetricResult]) -> str:
    if any(metric.status in ("error", "not_found") for metric in metrics):
        return "partial_error"
    if any(metric.status == "ok" for metric in metrics):
        return "ok"
    return "empty"


class InvestmentsMetricsService:
    """Facade used by the HTTP API and the CLI."""

    def __init__(
        self,
        repository: InvestmentsRepository,
        registry: MetricsRegistry | None = None,
        price_provider: Any = None,
        benchmark_store: MonthlySeriesStore | None = None,
        market_data_enabled: bool | None = None,
        anchor_max_points: int | None = None,
    ):
        self.repository = repository
        self.registry = registry or build_default_registry()
        self.engine = MetricsEngine(self.registry)
        self.price_provider = price_provider
        self.benchmark_store = benchmark_store or MonthlySeriesStore()
        self.market_data_enabled = settings.MARKET_DATA_ENABLED if market_data_enabled is None else market_data_enabled
        self.anchor_max_points = anchor_max_points or settings.ANCHOR_MAX_POINTS

    async def close(self) -> None:
        """Release the price provider connection pool and the database."""
        if self.price_provider is not None and hasattr(self.price_provider, "close"):
            await self.price_provider.close()
        self.repository.close()

    # ─── Manifest ──────────────────────────────────────────────

    def get_manifest(self) -> dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "generated_at": _now_iso(),
            "capabilities": {
                "supports_cards": True,
                "supports_periods": True,
                "supports_charts": True,
                "supports_aggregations": True,
            },
            "available_filters": {
                "keys": list(AVAILABLE_FILTERS),
                "currencies": ["BRL", "USD", "EUR"],
                "asset_classes": ["fixed_income", "equity", "funds", "crypto", "cash"],
                "statuses": ["open", "closed", "pending_settlement"],
                "group_by": ["day", "month"],
                "periods_months": list(DEFAULT_WINDOWS),
                "period_presets": ["mtd", "ytd", "12m", "origin"],
            },
            "metrics": self.registry.list_metrics(),
        }

    # ─── Queries ───────────────────────────────────────────────

    async def query_metrics(
        self,
        user_id: str,
        metric_ids: list[str],
        filters: Any = None,
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """Run a batch of metrics. Raises FilterValidationError on malformed filters."""
        trace_id = trace_id or str(uuid.uuid4())
        normalized, periods_months, group_by = normalize_investments_filters(filters)
        windows = build_period_windows(periods_months, normalized.as_of)

        obs = Observability(flow="investments-metrics", trace_id=trace_id, user_id=user_id)
        obs.info(
            "metrics_query_received",
            {"metrics": len(metric_ids), "windows": [w.label for w in windows], "group_by": group_by},
        )

        context = InvestmentsContext(
            user_id=user_id,
            repository=self.repository,
            price_provider=self.price_provider,
            benchmark_store=self.benchmark_store,
            trace_id=trace_id,
            market_data_enabled=self.market_data_enabled,
            anchor_max_points=self.anchor_max_points,
        )
        with obs.measure("run_metrics", {"metrics": list(metric_ids)}):
            results = await self.engine.run_metrics(list(metric_ids), context, normalized, windows, group_by)

        obs.debug(
            "metrics_query_finished",
            {
                "ok": sum(1 for r in results if r.status == "ok"),
                "empty": sum(1 for r in results if r.status == "empty"),
                "errors": sum(1 for r in results if r.status == "error"),
                "not_found": sum(1 for r in results if r.status == "not_found"),
            },
        )

        return {
            "success": True,
            "trace_id": trace_id,
            "generated_at": _now_iso(),
            "filters": normalized.model_dump(mode="json"),
            "periods": [window.model_dump(mode="json") for window in windows],
            "metrics": [result.model_dump(mode="json") for result in results],
        }

    async def query_cards(
        self,
        user_id: str,
        cards: list[dict[str, Any]],
        filters: Any = None,
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        trace_id = trace_id or str(uuid.uuid4())
        cards = [card for card in (cards or []) if isinstance(card, dict)]
        unique_ids = list(dict.fromkeys(
            metric_id
            for card in cards
            for metric_id in (card.get("metric_ids") or card.get("metricIds") or [])
        ))

        obs = Observability(flow="investments-cards", trace_id=trace_id, user_id=user_id)
        obs.info("cards_query_received", {"cards": len(cards), "unique_metrics": len(unique_ids)})

        batch = await self.query_metrics(user_id, unique_ids, filters, trace_id=trace_id)
        by_id = {item["metric_id"]: MetricResult(**item) for item in batch["metrics"]}

        results: list[dict[str, Any]] = []
        for card in cards:
            card_id = str(card.get("card_id") or card.get("cardId") or "")
            requested = card.get("metric_ids") or card.get("metricIds") or []
            metrics = [
                by_id.get(metric_id)
                or MetricResult(metric_id=metric_id, status="not_found", error=f"Metric not found: {metric_id}")
                for metric_id in requested
            ]
            result = CardResult(
                card_id=card_id,
                title=str(card.get("title") or card_id),
                presentation=str(card.get("presentation") or "generic"),
                status=card_status(metrics),
                metrics=metrics,
                meta={"metrics_requested": len(requested), "metrics_resolved": len(metrics)},
            )
            payload = result.model_dump(mode="json")
            payload["filters"] = batch["filters"]
            payload["periods"] = batch["periods"]
            results.append(payload)

        return {
            "success": True,
            "trace_id": trace_id,
            "generated_at": _now_iso(),
            "cards": results,
            "summary": {"cards_requested": len(cards), "cards_resolved": len(results)},
        }

    # ─── Manual assets ─────────────────────────────────────────

    def create_manual_asset(self, user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        asset = build_manual_asset(user_id, payload)
        tx = build_create_transaction(asset, payload)

        self.repository.upsert_asset(asset)
        stored = self.repository.insert_investment_transaction(tx)
        snapshot = self.repository.insert_position_snapshot(build_position_snapshot(asset, stored, []))

        logger.info("Created manual asset %s (%s) for user %s", asset.asset_id, asset.asset_class, user_id)
        return {
            "asset": asset.model_dump(mode="json"),
            "transaction": stored.model_dump(mode="json"),
            "position": snapshot.model_dump(mode="json"),
        }

    def edit_manual_asset(
        self,
        user_id: str,
        asset_id: str,
        operation: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        asset = self.repository.get_asset(user_id, asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset not found: {asset_id}")

        history = self.repository.list_transactions(user_id, asset_id=asset_id)
        tx = build_edit_transaction(asset, operation, payload or {}, history)
        stored = self.repository.insert_investment_transaction(tx)
        snapshot = self.repository.insert_position_snapshot(build_position_snapshot(asset, stored, history))

        if snapshot.quantity <= 0 and asset.status != "closed" and operation == "add_sell":
            asset = self.repository.upsert_asset(asset.model_copy(update={"status": "closed"}))
        elif snapshot.quantity > 0 and asset.status == "closed":
            asset = self.repository.upsert_asset(asset.model_copy(update={"status": "open"}))

        logger.info("Applied %s to asset %s for user %s", operation, asset_id, user_id)
        return {
            "asset": asset.model_dump(mode="json"),
            "transaction": stored.model_dump(mode="json"),
            "position": snapshot.model_dump(mode="json"),
        }

    def delete_manual_asset(self, user_id: str, asset_id: str, confirmation: str | None) -> bool:
        check_delete_confirmation(confirmation)
        deleted = self.repository.delete_asset(user_id, asset_id)
        if not deleted:
            logger.info("Delete requested for unknown asset %s (user %s)", asset_id, user_id)
        return deleted

    def search_user_assets(self, user_id: str, query: str = "", limit: int = 20) -> dict[str, Any]:
        try:
            limit = max(1, min(int(limit), 100))
        except (TypeError, ValueError):
            raise ManualEntryError("'limit' must be an integer") from None
        assets = self.repository.search_assets(user_id, query, limit)
        return {
            "query": query,
            "total": len(assets),
            "assets": [asset.model_dump(mode="json") for asset in assets],
        }
