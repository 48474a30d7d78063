"""
Coordinator agents — LLM-backed workers that satisfy the agent contract.

A coordinator receives its task, the memory slice chosen by the planner and
the outputs of its declared dependencies, and answers with an AgentResult.
"""

from __future__ import annotations

import logging
from typing import Any

from execution.input_builder import format_dependency_outputs_for_prompt
from models.selector import ModelSelector
from orchestrator.contracts import CONTRACTS
from shared import settings
from shared.models import AgentInput, AgentResult, ModelPolicy

logger = logging.getLogger(__name__)

COORDINATOR_SYSTEM_PROMPT = """You are the {name} ({nickname}).
Focus: {focus}
{description}

Limitations:
{limitations}

Answer ONLY with a JSON object:
{{"task_completed": true, "reasoning": "...", "result": {{...}}, "tools_used": [], "confidence": "high|medium|low"}}"""


class CoordinatorAgent:
    """One coordinator agent (analysis, investments or planning)."""

    def __init__(self, name: str, model_selector: ModelSelector, model_name: str | None = None):
        if name not in CONTRACTS:
            raise ValueError(f"Unknown coordinator: {name}")
        self.name = name
        self.contract = CONTRACTS[name]
        self.model_selector = model_selector
        self.model_name = model_name or settings.COORDINATOR_MODEL

    def build_messages(self, agent_input: AgentInput) -> list[dict[str, str]]:
        system = COORDINATOR_SYSTEM_PROMPT.format(
            name=self.contract.name,
            nickname=self.contract.nickname,
            focus=self.contract.focus,
            description=self.contract.description,
            limitations="\n".join(f"- {item}" for item in self.contract.limitations),
        )
        user_parts = [
            f"TASK: {agent_input.task_description}",
            f"EXPECTED OUTPUT: {agent_input.expected_output}",
        ]
        if agent_input.memory_context:
            user_parts.append(f"MEMORY CONTEXT: {agent_input.memory_context}")
        dependencies = format_dependency_outputs_for_prompt(agent_input.dependency_outputs)
        if dependencies:
            user_parts.append(dependencies)
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": "\n\n".join(user_parts)},
        ]

    async def execute(self, agent_input: AgentInput) -> AgentResult:
        policy = ModelPolicy(model_name=self.model_name, temperature=0.3, json_mode=True)
        raw = await self.model_selector.generate(self.build_messages(agent_input), policy)
        return self._to_result(raw)

    def _to_result(self, raw: dict[str, Any] | str) -> AgentResult:
        if not isinstance(raw, dict):
            return AgentResult(agent=self.name, reasoning="", result={"text": str(raw)}, metadata={"confidence": "low"})

        result = raw.get("result")
        if not isinstance(result, dict):
            result = {"value": result} if result is not None else {}
        tools = raw.get("tools_used")
        return AgentResult(
            agent=self.name,
            task_completed=bool(raw.get("task_completed", True)),
            reasoning=str(raw.get("reasoning") or ""),
            result=result,
            tools_used=[str(tool) for tool in tools] if isinstance(tools, list) else [],
            metadata={"confidence": str(raw.get("confidence") or "medium")},
        )


def build_coordinators(model_selector: ModelSelector) -> dict[str, CoordinatorAgent]:
    return {name: CoordinatorAgent(name, model_selector) for name in CONTRACTS}
