"""
Result Combiner — folds per-agent results into one execution report.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from shared.models import AgentResult, ExecutionDoc


class ExecutionReport(BaseModel):
    """Outcome of one DOC execution, results in priority order."""
    model_config = {"frozen": True}

    request_id: str
    results: list[AgentResult] = Field(default_factory=list)
    completed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def success(self) -> bool:
        return bool(self.results) and not self.failed

    def by_agent(self) -> dict[str, AgentResult]:
        return {result.agent: result for result in self.results}


class ResultCombiner:
    """Builds the report envelope returned by the execution manager."""

    def combine(self, doc: ExecutionDoc, results: list[AgentResult], elapsed_ms: float) -> ExecutionReport:
        return ExecutionReport(
            request_id=doc.request_id,
            results=results,
            completed=[r.agent for r in results if r.task_completed],
            failed=[r.agent for r in results if not r.task_completed],
            elapsed_ms=round(elapsed_ms, 2),
        )

    def summarize(self, report: ExecutionReport) -> dict[str, Any]:
        if not report.results:
            explanation = "No agent results were produced."
        elif report.failed:
            explanation = f"Executed {len(report.results)} agent(s); failed: {', '.join(report.failed)}."
        else:
            explanation = f"Executed {len(report.results)} agent(s)."
        return {
            "request_id": report.request_id,
            "success": report.success,
            "explanation": explanation,
            "completed": report.completed,
            "failed": report.failed,
            "elapsed_ms": report.elapsed_ms,
        }
