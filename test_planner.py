import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx

from orchestrator.contracts import format_contracts_for_prompt
from orchestrator.planner import NO_MEMORY, DocPlanner, format_memory_for_orchestrator

REASONING = (
    "Decomposition: investments and planning are involved. Dependencies: planning depends on the "
    "investments view. Memory: the user goal from the context. Prioritization: investments first."
)


def _selector(answer=None, error: Exception | None = None) -> MagicMock:
    selector = MagicMock()
    selector.generate = AsyncMock(return_value=answer, side_effect=error)
    return selector


def test_plan_fills_ids_and_returns_validated_doc():
    async def _run() -> None:
        selector = _selector(
            {
                "reasoning": REASONING,
                "execution_plan": {
                    "agents": [
                        {
                            "agent": "planning",
                            "priority": 2,
                            "task_description": "Build the contribution plan",
                            "expected_output": "Monthly plan",
                            "memory_context": "Goal: R$ 100k",
                            "dependencies": ["investments"],
                        },
                        {
                            "agent": "investments",
                            "priority": 1,
                            "task_description": "Review the portfolio",
                            "expected_output": "Allocation",
                            "dependencies": [],
                        },
                    ]
                },
            }
        )
        doc = await DocPlanner(selector, model_name="test-model").plan("Como atingir 100 mil?", {"recent": []})

        assert doc.original_query == "Como atingir 100 mil?"
        assert doc.request_id
        assert [task.agent for task in doc.agents] == ["planning", "investments"]
        assert doc.agents[0].dependencies == ["investments"]

        messages, policy = selector.generate.await_args.args[:2]
        assert policy.model_name == "test-model"
        assert policy.max_tokens == 1500
        assert "Investments Agent" in messages[0]["content"]
        assert "Como atingir 100 mil?" in messages[1]["content"]

    asyncio.run(_run())


def test_invalid_doc_falls_back_to_analysis():
    async def _run() -> None:
        selector = _selector({"reasoning": "short", "execution_plan": {"agents": []}})
        doc = await DocPlanner(selector).plan("Resumo dos meus gastos")

        assert len(doc.agents) == 1
        assert doc.agents[0].agent == "analysis"
        assert doc.agents[0].priority == 1
        assert doc.agents[0].memory_context == "No memory"
        assert "Fallback" in doc.reasoning

    asyncio.run(_run())


def test_model_error_falls_back_to_analysis():
    async def _run() -> None:
        selector = _selector(error=httpx.ConnectError("model offline"))
        doc = await DocPlanner(selector).plan("Oi", {"recent": [{"user_input": "a", "ai_response": "b"}]})
        assert doc.agents[0].agent == "analysis"
        assert doc.agents[0].memory_context == "Full memory available"
        assert "model offline" in doc.reasoning

    asyncio.run(_run())


def test_memory_formatting():
    assert format_memory_for_orchestrator(None) == NO_MEMORY
    assert format_memory_for_orchestrator({"recent": [], "old": []}) == NO_MEMORY

    text = format_memory_for_orchestrator(
        {
            "recent": [{"userInput": "Quanto gastei?", "aiResponse": "R$ 2.000"}],
            "old": ["Usuário quer comprar um carro", {"content": "Reserva de emergência completa"}],
        }
    )
    assert "User: Quanto gastei?" in text
    assert "AI: R$ 2.000" in text
    assert "HISTORY (summarized):" in text
    assert "Reserva de emergência completa" in text


def test_contracts_prompt_lists_every_coordinator():
    text = format_contracts_for_prompt()
    for agent in ("analysis", "investments", "planning"):
        assert f"agent id: `{agent}`" in text
