"""
Input builder — assembles what a coordinator agent receives.

Only the outputs of an agent's *declared* dependencies are passed along.
"""

from __future__ import annotations

import json

from shared.models import AgentInput, AgentResult, AgentTask


def prepare_input(task: AgentTask, results: dict[str, AgentResult]) -> AgentInput:
    return AgentInput(
        task_description=task.task_description,
        expected_output=task.expected_output,
        memory_context=task.memory_context,
        dependency_outputs={dep: results[dep] for dep in task.dependencies if dep in results},
    )


def format_dependency_outputs_for_prompt(outputs: dict[str, AgentResult]) -> str:
    """Render dependency outputs as a prompt section."""
    if not outputs:
        return ""

    parts: list[str] = ["OUTPUTS FROM PREVIOUS AGENTS:"]
    for agent, output in outputs.items():
        status = "completed" if output.task_completed else "failed"
        parts.append(f"### {agent} ({status})")
        if output.reasoning:
            parts.append(f"Reasoning: {output.reasoning}")
        parts.append(json.dumps(output.result, ensure_ascii=False, indent=2, default=str))
        parts.append("")
    return "\n".join(parts).rstrip()
