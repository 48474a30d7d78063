"""
Model Layer — async LLM client with policy enforcement.

Responsibility:
- Hide provider details (Ollama /api/chat, OpenAI-compatible /v1/chat/completions)
- Enforce timeouts, retries and token limits from ModelPolicy
- Parse JSON answers (tolerating markdown fences)

This is the ONLY place where LLMs are called. The planner and the
coordinator agents go through it.
"""

import json
import logging
import os
from typing import Any

import httpx

from observability.logger import Observability
from shared.models import ModelPolicy

logger = logging.getLogger(__name__)

PROVIDERS = ("auto", "ollama", "openai_compatible")


class ModelSelector:
    """Async LLM calls with retry and JSON policies."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        provider: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        configured_base_url = os.getenv("MODEL_BASE_URL", "").strip()
        self.base_url = (configured_base_url or base_url).rstrip("/")
        provider_raw = (provider or os.getenv("MODEL_PROVIDER", "auto")).strip().lower()
        if provider_raw not in PROVIDERS:
            provider_raw = "auto"
        self.provider = self._resolve_provider(provider_raw, self.base_url)

        self.api_key = api_key if api_key is not None else os.getenv("MODEL_API_KEY", "").strip()
        if not self.api_key and self.provider == "openai_compatible":
            self.api_key = os.getenv("OPENAI_API_KEY", "").strip()

        headers: dict[str, str] = {}
        if self.provider == "openai_compatible" and self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=60.0,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers=headers,
            transport=transport,
        )

    async def generate(
        self,
        messages: list[dict],
        policy: ModelPolicy,
        session_id: str | None = None,
    ) -> dict[str, Any] | str:
        """Run one completion. Returns a dict when json_mode, else text."""
        obs = Observability(session_id, flow="model-call")

        last_error: Exception | None = None
        for attempt in range(1, max(1, policy.max_retries) + 1):
            try:
                with obs.measure(
                    "model_call",
                    {"model": policy.model_name, "attempt": attempt, "provider": self.provider},
                ):
                    text = await self._call_model(messages, policy)
                if policy.json_mode:
                    return self._parse_json(text)
                return text
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.warning(
                    "Model call failed (attempt %d/%d): %s",
                    attempt,
                    policy.max_retries,
                    e,
                )

        obs.log_event(
            "model_failure",
            {"error": str(last_error), "policy": policy.model_dump()},
            level="ERROR",
        )
        raise last_error or RuntimeError("Unknown model failure")

    def _resolve_provider(self, provider_raw: str, base_url: str) -> str:
        if provider_raw != "auto":
            return provider_raw
        lowered = (base_url or "").strip().lower()
        if "openai.com" in lowered or lowered.endswith("/v1"):
            return "openai_compatible"
        return "ollama"

    async def _call_model(self, messages: list[dict], policy: ModelPolicy) -> str:
        if self.provider == "openai_compatible":
            return await self._call_openai_chat(messages, policy)
        try:
            return await self._call_ollama_chat(messages, policy)
        except httpx.HTTPStatusError as e:
            if e.response is not None and e.response.status_code == 404:
                logger.info("Ollama endpoint not found; trying OpenAI-compatible chat endpoint.")
                return await self._call_openai_chat(messages, policy)
            raise

    async def _call_ollama_chat(self, messages: list[dict], policy: ModelPolicy) -> str:
        payload: dict[str, Any] = {
            "model": policy.model_name,
            "messages": messages,
            "stream": False,
            "keep_alive": "10m",
            "options": {
                "temperature": policy.temperature,
                "num_ctx": 8192,
                "num_predict": policy.max_tokens,
            },
        }
        if policy.json_mode:
            payload["format"] = "json"

        response = await self._client.post("/api/chat", json=payload, timeout=policy.timeout_seconds)
        response.raise_for_status()
        return response.json().get("message", {}).get("content", "")

    async def _call_openai_chat(self, messages: list[dict], policy: ModelPolicy) -> str:
        payload: dict[str, Any] = {
            "model": policy.model_name,
            "messages": messages,
            "temperature": policy.temperature,
            "max_tokens": policy.max_tokens,
            "stream": False,
        }
        if policy.json_mode:
            payload["response_format"] = {"type": "json_object"}

        path = "/chat/completions" if self.base_url.endswith("/v1") else "/v1/chat/completions"
        response = await self._client.post(path, json=payload, timeout=policy.timeout_seconds)
        response.raise_for_status()
        choices = response.json().get("choices") or []
        if not choices:
            raise ValueError("OpenAI-compatible response missing choices")
        message = choices[0].get("message") or {}
        return str(message.get("content", ""))

    def _parse_json(self, text: str) -> dict[str, Any]:
        """Parse JSON response, handling markdown fences."""
        clean_text = text.strip()
        if clean_text.startswith("```"):
            clean_text = clean_text.split("\n", 1)[1].rsplit("\n", 1)[0]
        try:
            parsed = json.loads(clean_text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON from model: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("Model JSON answer must be an object")
        return parsed

    async def close(self) -> None:
        await self._client.aclose()
