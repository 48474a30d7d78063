"""
Execution Queue — per-task state for one DOC execution.

Each task moves pending → running → completed | failed. Failures are
terminal; a failed task still counts as finished for its dependents.
"""

from __future__ import annotations

from shared.models import AgentResult, AgentTask, ExecutionDoc

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


def sort_by_priority(tasks: list[AgentTask]) -> list[AgentTask]:
    return sorted(tasks, key=lambda task: task.priority)


class ExecutionQueue:
    """Tracks which agents are ready, running or finished."""

    def __init__(self, doc: ExecutionDoc):
        self.tasks = sort_by_priority(list(doc.agents))
        self.states: dict[str, str] = {task.agent: PENDING for task in self.tasks}
        self.results: dict[str, AgentResult] = {}

    def pending(self) -> list[AgentTask]:
        return [task for task in self.tasks if self.states[task.agent] == PENDING]

    def finished(self) -> set[str]:
        return {name for name, state in self.states.items() if state in (COMPLETED, FAILED)}

    def ready(self) -> list[AgentTask]:
        """Pending tasks whose dependencies all reached a terminal state."""
        done = self.finished()
        return [task for task in self.pending() if all(dep in done for dep in task.dependencies)]

    def mark_running(self, agent: str) -> None:
        self.states[agent] = RUNNING

    def mark_finished(self, agent: str, result: AgentResult) -> None:
        self.results[agent] = result
        self.states[agent] = COMPLETED if result.task_completed else FAILED

    def is_done(self) -> bool:
        return not any(state in (PENDING, RUNNING) for state in self.states.values())

    def ordered_results(self) -> list[AgentResult]:
        """Results in priority order, independent of completion order."""
        return [self.results[task.agent] for task in self.tasks if task.agent in self.results]

    def agents_in(self, state: str) -> list[str]:
        return [task.agent for task in self.tasks if self.states[task.agent] == state]
