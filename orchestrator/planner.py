"""
DOC Planner — turns a complex user request into a validated direction document.

Flow:
1. Ask the model (through ModelSelector) for a DOC in JSON
2. Fill `request_id` / `original_query` when missing
3. Validate; on validation failure or model error fall back to a one-agent DOC
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from models.selector import ModelSelector
from observability.logger import Observability
from orchestrator.contracts import format_contracts_for_prompt
from orchestrator.validators import extract_agents, validate_doc
from shared import settings
from shared.models import AgentTask, ExecutionDoc, ModelPolicy

logger = logging.getLogger(__name__)

NO_MEMORY = "No memory available."

PLANNER_SYSTEM_PROMPT = """You are the orchestrator of a personal-finance assistant.
Decompose the user's request into tasks for the coordinator agents below.

{contracts}

Think in four steps and summarize them in "reasoning":
1. DECOMPOSITION: which areas are involved
2. DEPENDENCIES: which agent needs another agent's output first
3. MEMORY: which parts of the chat memory each agent needs
4. PRIORITIZATION: the execution order

Answer ONLY with a JSON object:
{{
  "request_id": "<uuid>",
  "original_query": "<user query>",
  "reasoning": "<at least a few sentences covering the four steps>",
  "execution_plan": {{
    "agents": [
      {{
        "agent": "analysis|investments|planning",
        "priority": 1,
        "task_description": "...",
        "expected_output": "...",
        "memory_context": "...",
        "dependencies": []
      }}
    ]
  }}
}}
Rules: priorities are unique integers starting at 1; an agent may only depend on
agents in the plan with a lower priority; never depend on yourself."""


def format_memory_for_orchestrator(memory: dict[str, Any] | None) -> str:
    """Render recent cycles verbatim and older cycles as summaries."""
    if not memory:
        return NO_MEMORY

    parts: list[str] = []
    recent = memory.get("recent") or []
    if recent:
        parts.append("RECENT:")
        for cycle in recent:
            parts.append(f"  User: {cycle.get('user_input') or cycle.get('userInput') or ''}")
            parts.append(f"  AI: {cycle.get('ai_response') or cycle.get('aiResponse') or ''}")
            parts.append("")

    old = memory.get("old") or []
    if old:
        parts.append("HISTORY (summarized):")
        for summary in old:
            content = summary if isinstance(summary, str) else summary.get("content", "")
            parts.append(f"  {content}")

    return "\n".join(parts).rstrip() if parts else NO_MEMORY


def parse_doc(raw: dict[str, Any]) -> ExecutionDoc:
    """Build an ExecutionDoc from an already validated raw DOC."""
    agents = [
        AgentTask(
            agent=item["agent"],
            priority=item["priority"],
            task_description=item["task_description"],
            expected_output=item["expected_output"],
            memory_context=item.get("memory_context") or "",
            dependencies=list(item.get("dependencies") or []),
        )
        for item in extract_agents(raw)
    ]
    return ExecutionDoc(
        request_id=raw["request_id"],
        original_query=raw["original_query"],
        reasoning=raw["reasoning"],
        agents=agents,
    )


def create_fallback_doc(query: str, memory: dict[str, Any] | None, errors: list[str]) -> ExecutionDoc:
    """Route the whole request to the analysis agent."""
    doc = ExecutionDoc(
        request_id=str(uuid.uuid4()),
        original_query=query,
        reasoning=(
            f"Fallback: automatic decomposition failed. Errors: {'; '.join(errors)}. "
            "Routing the request to the analysis agent."
        ),
        agents=[
            AgentTask(
                agent="analysis",
                priority=1,
                task_description=f'Analyze the following user request: "{query}"',
                expected_output="Analysis and answer to the user request",
                memory_context="Full memory available" if memory else "No memory",
                dependencies=[],
            )
        ],
    )
    logger.warning("Fallback DOC %s generated: %s", doc.request_id, "; ".join(errors)[:100])
    return doc


class DocPlanner:
    """Asks the model for a DOC and guarantees a valid plan comes back."""

    def __init__(self, model_selector: ModelSelector, model_name: str | None = None):
        self.model_selector = model_selector
        self.model_name = model_name or settings.ORCHESTRATOR_MODEL

    async def plan(self, query: str, memory: dict[str, Any] | None = None) -> ExecutionDoc:
        obs = Observability(flow="orchestrator-plan")
        messages = [
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT.format(contracts=format_contracts_for_prompt())},
            {
                "role": "user",
                "content": "\n".join(
                    [
                        "CHAT MEMORY:",
                        format_memory_for_orchestrator(memory),
                        "",
                        f'USER QUERY: "{query}"',
                        "",
                        "Follow the four mandatory steps and produce the DOC.",
                    ]
                ),
            },
        ]
        policy = ModelPolicy(model_name=self.model_name, temperature=0.2, json_mode=True, max_tokens=1500)

        try:
            raw = await self.model_selector.generate(messages, policy, session_id=obs.session_id)
        except Exception as e:
            logger.error("DOC generation failed for %r: %s", query[:50], e)
            return create_fallback_doc(query, memory, [str(e)])

        if not isinstance(raw, dict):
            return create_fallback_doc(query, memory, ["Model did not return a JSON object"])

        if not raw.get("request_id"):
            raw["request_id"] = str(uuid.uuid4())
        if not raw.get("original_query"):
            raw["original_query"] = query

        validation = validate_doc(raw)
        if not validation.valid:
            logger.warning("Invalid DOC for %r: %s", query[:80], "; ".join(validation.errors))
            return create_fallback_doc(query, memory, validation.errors)

        doc = parse_doc(raw)
        obs.info(
            "doc_generated",
            {
                "request_id": doc.request_id,
                "agents": [task.agent for task in doc.agents],
                "warnings": validation.warnings,
                "raw_size": len(json.dumps(raw, default=str)),
            },
        )
        return doc
