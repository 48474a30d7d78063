"""
Metrics Registry — maps metric ids to handlers and their metadata.

Responsibility:
- Validate and store metric definitions
- Resolve a metric by id
- Expose metadata (without handlers) for manifests

One registry is built at startup and handed to the engine; tests build
their own.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

MetricHandler = Callable[..., Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class MetricDefinition:
    id: str
    handler: MetricHandler
    version: str = "1.0.0"
    title: str = ""
    description: str = ""
    supported_filters: list[str] = field(default_factory=list)
    output: dict[str, Any] = field(default_factory=lambda: {"kind": "unknown"})
    tags: list[str] = field(default_factory=list)

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "title": self.title or self.id,
            "description": self.description,
            "supported_filters": list(self.supported_filters),
            "output": dict(self.output),
            "tags": list(self.tags),
        }


class MetricsRegistry:
    """Registry of metric definitions keyed by id."""

    def __init__(self):
        self._metrics: dict[str, MetricDefinition] = {}

    def register(self, definition: MetricDefinition) -> None:
        if not isinstance(definition, MetricDefinition):
            raise TypeError("Metric definition must be a MetricDefinition")
        if not definition.id or not isinstance(definition.id, str):
            raise ValueError("Metric must have a string id")
        if not callable(definition.handler):
            raise ValueError(f"Metric '{definition.id}' must have a handler")

        if definition.id in self._metrics:
            logger.info("Replacing metric definition: %s", definition.id)
        self._metrics[definition.id] = definition
        logger.debug("Registered metric: %s (v%s)", definition.id, definition.version)

    def get(self, metric_id: str) -> MetricDefinition | None:
        return self._metrics.get(metric_id)

    def list_metrics(self) -> list[dict[str, Any]]:
        return [definition.describe() for definition in self._metrics.values()]

    def clear(self) -> None:
        self._metrics.clear()

    @property
    def registered_ids(self) -> list[str]:
        return list(self._metrics.keys())

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._metrics

    def __len__(self) -> int:
        return len(self._metrics)
