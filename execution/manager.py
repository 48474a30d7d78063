"""
Execution Manager — runs a validated DOC wave by wave.

Algorithm:
1. Compute the ready set (pending agents whose dependencies all finished)
2. Empty ready set with agents left → dependency deadlock, force-fail the rest
3. Run the ready set concurrently, each agent under its own timeout
4. Record completed/failed and loop

Priority only orders the returned results; scheduling follows dependencies.
Nothing raised by an agent escapes `execute`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

from execution.input_builder import prepare_input
from execution.queue import ExecutionQueue
from execution.result_combiner import ExecutionReport, ResultCombiner
from observability.logger import Observability
from shared import settings
from shared.models import AgentInput, AgentResult, AgentTask, ExecutionDoc

logger = logging.getLogger(__name__)

DEADLOCK_REASON = "dependency deadlock"


class Coordinator(Protocol):
    async def execute(self, agent_input: AgentInput) -> AgentResult | dict[str, Any]: ...


def failure_result(agent: str, error: str) -> AgentResult:
    return AgentResult(
        agent=agent,
        task_completed=False,
        reasoning=f"Execution failed: {error}",
        tools_used=[],
        result={"error": error},
        metadata={"confidence": "none"},
    )


class ExecutionManager:
    """Wave-based executor for coordinator agents."""

    def __init__(
        self,
        coordinators: dict[str, Coordinator],
        timeout_seconds: float | None = None,
    ):
        self.coordinators = coordinators
        self.timeout_seconds = settings.AGENT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self.result_combiner = ResultCombiner()

    async def execute(self, doc: ExecutionDoc) -> ExecutionReport:
        obs = Observability(flow="orchestrator-execution", trace_id=doc.request_id)
        started = time.perf_counter()
        queue = ExecutionQueue(doc)
        obs.info("execution_started", {"agents": [task.agent for task in queue.tasks]})

        wave = 0
        while not queue.is_done():
            ready = queue.ready()
            if not ready:
                stuck = queue.agents_in("pending")
                obs.warning("execution_deadlock", {"pending": stuck})
                for agent in stuck:
                    queue.mark_finished(agent, failure_result(agent, DEADLOCK_REASON))
                break

            wave += 1
            logger.info("Executing wave %d: %s", wave, [task.agent for task in ready])
            for task in ready:
                queue.mark_running(task.agent)

            results = await asyncio.gather(*(self._run_task(task, queue, obs) for task in ready))
            for task, result in zip(ready, results):
                queue.mark_finished(task.agent, result)

        elapsed_ms = (time.perf_counter() - started) * 1000
        report = self.result_combiner.combine(doc, queue.ordered_results(), elapsed_ms)
        obs.info(
            "execution_finished",
            {
                "waves": wave,
                "completed": report.completed,
                "failed": report.failed,
                "elapsed_ms": report.elapsed_ms,
            },
        )
        return report

    async def _run_task(self, task: AgentTask, queue: ExecutionQueue, obs: Observability) -> AgentResult:
        coordinator = self.coordinators.get(task.agent)
        if coordinator is None:
            return failure_result(task.agent, f"no coordinator registered for '{task.agent}'")

        agent_input = prepare_input(task, queue.results)
        try:
            with obs.measure("agent_execute", {"agent": task.agent, "priority": task.priority}):
                raw = await asyncio.wait_for(coordinator.execute(agent_input), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Agent %s timed out after %.1fs", task.agent, self.timeout_seconds)
            return failure_result(task.agent, "timeout")
        except Exception as e:
            logger.error("Agent %s failed: %s", task.agent, e, exc_info=True)
            return failure_result(task.agent, str(e) or type(e).__name__)

        if isinstance(raw, AgentResult):
            return raw
        if isinstance(raw, dict):
            try:
                return AgentResult.model_validate({"agent": task.agent, **raw})
            except ValueError as e:
                return failure_result(task.agent, f"invalid agent result: {e}")
        return failure_result(task.agent, f"invalid agent result type: {type(raw).__name__}")
