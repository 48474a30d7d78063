"""
DOC validators — structural checks for a direction document before execution.

Validation never raises; it returns the list of human-readable reasons.
Accepted shapes: `{..., "execution_plan": {"agents": [...]}}` or `{..., "agents": [...]}`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

VALID_AGENTS = ("analysis", "investments", "planning")
MIN_REASONING_LENGTH = 50

_REASONING_STEPS = (
    ("DECOMPOSITION", ("decompos", "área", "area", "envolvid", "anális", "analys", "investiment", "invest", "planejament", "planning")),
    ("DEPENDENCIES", ("dependência", "depend", "ordem", "order", "antes", "before", "sequência", "sequence")),
    ("MEMORY", ("memória", "memory", "contexto", "context", "essencial", "relevante", "relevant", "filtr")),
    ("PRIORITIZATION", ("priorid", "prioriza", "priorit", "ordem", "order", "estratégia", "strategy", "execução", "execution")),
)


@dataclass
class DocValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def extract_agents(doc: dict[str, Any]) -> Any:
    plan = doc.get("execution_plan")
    if isinstance(plan, dict) and "agents" in plan:
        return plan.get("agents")
    return doc.get("agents")


def reasoning_warnings(reasoning: str) -> list[str]:
    """Chain-of-thought steps not mentioned in the reasoning (non-blocking)."""
    lowered = reasoning.lower()
    return [
        f'Reasoning may be missing the "{label}" step (warning, non-blocking)'
        for label, keywords in _REASONING_STEPS
        if not any(keyword in lowered for keyword in keywords)
    ]


def validate_reasoning(reasoning: str) -> list[str]:
    if len(reasoning) < MIN_REASONING_LENGTH:
        return ["Reasoning too short: it must describe decomposition, dependencies, memory and prioritization"]
    return []


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def validate_agents(agents: list[Any]) -> list[str]:
    errors: list[str] = []
    entries = [agent if isinstance(agent, dict) else {} for agent in agents]
    names = [entry.get("agent") for entry in entries]
    by_name = {entry.get("agent"): entry for entry in entries}

    for index, (raw, entry) in enumerate(zip(agents, entries)):
        prefix = f"agents[{index}]"
        if not isinstance(raw, dict):
            errors.append(f"{prefix} must be an object")
            continue

        name = entry.get("agent")
        if name not in VALID_AGENTS:
            errors.append(f'{prefix}.agent invalid: "{name}". Expected: {", ".join(VALID_AGENTS)}')

        priority = entry.get("priority")
        if not _is_positive_int(priority):
            errors.append(f"{prefix}.priority must be a positive integer, got: {priority!r}")

        for key in ("task_description", "expected_output"):
            value = entry.get(key)
            if not value or not isinstance(value, str):
                errors.append(f"{prefix}.{key} missing or invalid")

        memory_context = entry.get("memory_context", "")
        if memory_context is not None and not isinstance(memory_context, str):
            errors.append(f"{prefix}.memory_context must be a string")

        dependencies = entry.get("dependencies")
        if not isinstance(dependencies, list):
            errors.append(f"{prefix}.dependencies must be a list")
            continue

        for dep in dependencies:
            if dep not in VALID_AGENTS:
                errors.append(f'{prefix}.dependencies contains invalid agent: "{dep}"')
            if dep not in names:
                errors.append(f'{prefix}.dependencies references agent "{dep}" that is not in the execution plan')
            if dep == name:
                errors.append(f'{prefix}.dependencies contains self-reference: "{dep}"')

        for dep in dependencies:
            dep_entry = by_name.get(dep)
            if dep_entry is None or dep == name:
                continue
            dep_priority = dep_entry.get("priority")
            if _is_positive_int(dep_priority) and _is_positive_int(priority) and dep_priority >= priority:
                errors.append(
                    f'{prefix}: dependency "{dep}" has priority {dep_priority} >= {priority}. '
                    "Dependencies must have a lower priority."
                )

    priorities = [entry.get("priority") for entry in entries]
    if len(set(map(repr, priorities))) != len(priorities):
        errors.append("Priorities must be unique across agents")

    if len(set(map(repr, names))) != len(names):
        errors.append("Duplicate agents in the execution plan")

    return errors


def validate_doc(doc: Any) -> DocValidation:
    if not isinstance(doc, dict):
        return DocValidation(valid=False, errors=["DOC must be an object"])

    errors: list[str] = []
    warnings: list[str] = []

    for key in ("request_id", "original_query", "reasoning"):
        value = doc.get(key)
        if not value or not isinstance(value, str):
            errors.append(f'Field "{key}" missing or invalid (must be a string)')

    reasoning = doc.get("reasoning")
    if isinstance(reasoning, str) and reasoning:
        errors.extend(validate_reasoning(reasoning))
        warnings.extend(reasoning_warnings(reasoning))

    agents = extract_agents(doc)
    if not isinstance(agents, list) or not agents:
        errors.append("execution_plan.agents must be a non-empty list")
    else:
        errors.extend(validate_agents(agents))

    if warnings:
        logger.debug("DOC %s reasoning warnings: %s", doc.get("request_id"), warnings)
    return DocValidation(valid=not errors, errors=errors, warnings=warnings)
