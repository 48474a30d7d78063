"""
Observability Layer — Structured Logging & timing.

Responsibility:
- Log domain events in a structured JSON format
- Measure latency of flows (metrics batches, DOC executions, model calls)
- Contextual logging (flow, user_id, session_id, trace_id)
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("observability")


class Observability:
    """Structured logger for a single flow (request, plan execution, model call)."""

    def __init__(
        self,
        session_id: str | None = None,
        *,
        flow: str = "",
        trace_id: str | None = None,
        user_id: str | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.trace_id = trace_id or str(uuid.uuid4())
        self.flow = flow
        self.user_id = user_id

    def log_event(self, event_type: str, payload: dict[str, Any] | None = None, level: str = "INFO") -> None:
        """Log a structured event."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "trace_id": self.trace_id,
            "event": event_type,
            "level": level,
        }
        if self.flow:
            entry["flow"] = self.flow
        if self.user_id:
            entry["user_id"] = self.user_id
        entry.update(payload or {})

        log_method = getattr(logger, level.lower(), logger.info)
        log_method(json.dumps(entry, default=str, ensure_ascii=False))

    def info(self, event_type: str, payload: dict[str, Any] | None = None) -> None:
        self.log_event(event_type, payload, level="INFO")

    def debug(self, event_type: str, payload: dict[str, Any] | None = None) -> None:
        self.log_event(event_type, payload, level="DEBUG")

    def warning(self, event_type: str, payload: dict[str, Any] | None = None) -> None:
        self.log_event(event_type, payload, level="WARNING")

    @contextmanager
    def measure(self, operation: str, metadata: dict[str, Any] | None = None):
        """Context manager to measure execution time of an operation."""
        start_time = time.perf_counter()
        meta = metadata or {}
        try:
            yield
            success = True
            error = None
        except Exception as e:
            success = False
            error = str(e)
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.log_event(
                "execution_metric",
                {
                    "operation": operation,
                    "duration_ms": round(duration_ms, 2),
                    "success": success,
                    "error": error,
                    **meta,
                },
            )

    def span(self, trace_id: str) -> "Observability":
        """Create a new logger instance sharing the trace_id (for deep calls)."""
        return Observability(self.session_id, flow=self.flow, trace_id=trace_id, user_id=self.user_id)
