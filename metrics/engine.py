"""
Metrics Engine — runs a batch of metrics with per-metric isolation.

A missing metric yields `not_found`, a raising or malformed handler yields `error`;
neither affects the other entries of the batch.
"""

import logging
import time
from typing import Any

from metrics.registry import MetricDefinition, MetricsRegistry
from shared.models import MetricResult, PeriodWindow

logger = logging.getLogger(__name__)

_VALID_STATUSES = ("ok", "error", "not_found", "empty")


class MetricsEngine:
    """Executes registered metric handlers."""

    def __init__(self, registry: MetricsRegistry):
        self.registry = registry

    async def run_metrics(
        self,
        metric_ids: list[str],
        context: Any,
        filters: Any,
        period_windows: list[PeriodWindow],
        group_by: str = "month",
    ) -> list[MetricResult]:
        results: list[MetricResult] = []

        for metric_id in metric_ids:
            definition = self.registry.get(metric_id)
            if definition is None:
                results.append(
                    MetricResult(
                        metric_id=metric_id,
                        status="not_found",
                        error=f"Metric not registered: {metric_id}",
                    )
                )
                continue

            started = time.perf_counter()
            try:
                outcome = await definition.handler(
                    context=context,
                    filters=filters,
                    period_windows=period_windows,
                    group_by=group_by,
                )
                results.append(self._to_result(metric_id, definition, outcome or {}, started))
            except Exception as e:
                logger.warning(
                    "Metric %s failed (trace=%s): %s",
                    metric_id,
                    getattr(context, "trace_id", None),
                    e,
                    exc_info=True,
                )
                results.append(MetricResult(metric_id=metric_id, status="error", error=str(e)))

        return results

    @staticmethod
    def _to_result(metric_id: str, definition: MetricDefinition, outcome: Any, started: float) -> MetricResult:
        """Shape a handler outcome; malformed outcomes raise into the caller's barrier."""
        if not isinstance(outcome, dict):
            raise TypeError(f"handler returned {type(outcome).__name__}, expected dict")

        status = outcome.get("status") or "ok"
        if status not in _VALID_STATUSES:
            logger.warning("Metric %s returned unknown status %r", metric_id, status)
            status = "error"

        return MetricResult(
            metric_id=metric_id,
            status=status,
            data=outcome.get("data"),
            error=outcome.get("error"),
            meta={
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
                "output": definition.output,
                "version": definition.version,
                **(outcome.get("meta") or {}),
            },
        )
