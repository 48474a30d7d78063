from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from agents.coordinator import CoordinatorAgent
from models.selector import ModelSelector
from shared.models import AgentInput, AgentResult, ModelPolicy


def _selector(monkeypatch, base_url: str, handler, provider: str = "auto") -> ModelSelector:
    monkeypatch.delenv("MODEL_BASE_URL", raising=False)
    monkeypatch.setenv("MODEL_PROVIDER", provider)
    monkeypatch.setenv("MODEL_API_KEY", "test-key")
    return ModelSelector(base_url=base_url, transport=httpx.MockTransport(handler))


def test_auto_provider_detection(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    assert _selector(monkeypatch, "http://localhost:11434", handler).provider == "ollama"
    assert _selector(monkeypatch, "https://api.openai.com/v1", handler).provider == "openai_compatible"


def test_ollama_json_mode_uses_policy_token_limit(monkeypatch):
    calls: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append({"path": request.url.path, "json": json.loads(request.content)})
        return httpx.Response(200, json={"message": {"content": '```json\n{"ok": true}\n```'}})

    async def _run() -> None:
        selector = _selector(monkeypatch, "http://localhost:11434", handler)
        out = await selector.generate(
            [{"role": "user", "content": "json please"}],
            ModelPolicy(model_name="llama3", max_tokens=321),
        )
        await selector.close()
        assert out == {"ok": True}
        assert calls[0]["path"] == "/api/chat"
        assert calls[0]["json"]["format"] == "json"
        assert calls[0]["json"]["options"]["num_predict"] == 321

    asyncio.run(_run())


def test_openai_compatible_sends_bearer_and_retries_invalid_json(monkeypatch):
    calls: list[httpx.Request] = []
    answers = iter(["not json", '{"answer": 42}'])

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": next(answers)}}]})

    async def _run() -> None:
        selector = _selector(monkeypatch, "https://api.example.com/v1", handler, provider="openai_compatible")
        out = await selector.generate([{"role": "user", "content": "x"}], ModelPolicy(model_name="gpt", max_retries=2))
        await selector.close()
        assert out == {"answer": 42}
        assert len(calls) == 2
        assert calls[0].url.path == "/v1/chat/completions"
        assert calls[0].headers["Authorization"] == "Bearer test-key"

    asyncio.run(_run())


def test_exhausted_retries_raise_last_error(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "down"})

    async def _run() -> None:
        selector = _selector(monkeypatch, "https://api.example.com/v1", handler, provider="openai_compatible")
        with pytest.raises(httpx.HTTPStatusError):
            await selector.generate([{"role": "user", "content": "x"}], ModelPolicy(model_name="gpt", max_retries=2))
        await selector.close()

    asyncio.run(_run())


def test_coordinator_agent_wraps_model_answer(monkeypatch):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        content = json.dumps(
            {"task_completed": True, "reasoning": "ok", "result": {"plan": "save 10%"}, "confidence": "high"}
        )
        return httpx.Response(200, json={"message": {"content": content}})

    async def _run() -> None:
        selector = _selector(monkeypatch, "http://localhost:11434", handler)
        agent = CoordinatorAgent("planning", selector, model_name="llama3")
        result = await agent.execute(
            AgentInput(
                task_description="Plan savings",
                expected_output="Plan",
                dependency_outputs={"investments": AgentResult(agent="investments", result={"yield": 1})},
            )
        )
        await selector.close()

        assert result.agent == "planning"
        assert result.result == {"plan": "save 10%"}
        assert result.metadata == {"confidence": "high"}
        user_prompt = seen[0]["messages"][1]["content"]
        assert "OUTPUTS FROM PREVIOUS AGENTS" in user_prompt
        assert "### investments (completed)" in user_prompt

    asyncio.run(_run())


def test_unknown_coordinator_is_rejected():
    with pytest.raises(ValueError):
        CoordinatorAgent("marketing", model_selector=None)
