import asyncio

import httpx
import pytest

from investments.brapi_client import BrapiClient


def test_quote_history_sends_token_and_uses_cache():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"results": [{"symbol": "PETR4", "historicalDataPrice": []}]})

    async def _run() -> None:
        client = BrapiClient(
            base_url="https://brapi.test/api",
            api_key="secret",
            retries=1,
            cache_ttl_seconds=60,
            transport=httpx.MockTransport(handler),
        )
        first = await client.get_quote_history("petr4")
        second = await client.get_quote_history("PETR4")
        assert first == second
        assert len(requests) == 1
        assert requests[0].url.path == "/api/quote/PETR4"
        assert requests[0].url.params["token"] == "secret"
        assert requests[0].url.params["range"] == "max"

        client.clear_cache()
        await client.get_quote_history("PETR4")
        assert len(requests) == 2
        await client.close()

    asyncio.run(_run())


def test_quote_history_falls_back_to_v2_endpoint():
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.startswith("/api/v2/"):
            return httpx.Response(200, json={"results": []})
        return httpx.Response(404, json={"error": "not found"})

    async def _run() -> None:
        client = BrapiClient(base_url="https://brapi.test/api", api_key="", retries=3, transport=httpx.MockTransport(handler))
        assert await client.get_quote_history("HGLG11") == {"results": []}
        assert paths == ["/api/quote/HGLG11", "/api/v2/quote/HGLG11"]
        await client.close()

    asyncio.run(_run())


def test_prime_rate_retries_then_raises():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={"error": "unavailable"})

    async def _run() -> None:
        client = BrapiClient(base_url="https://brapi.test/api", api_key="", retries=2, transport=httpx.MockTransport(handler))
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_prime_rate_history(start="01/01/2024", end="31/01/2024")
        assert len(calls) == 2
        assert calls[0].url.params["start"] == "01/01/2024"
        assert "token" not in calls[0].url.params
        await client.close()

    asyncio.run(_run())


def test_transport_errors_retry_on_one_pooled_client():
    attempts: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async def _run() -> None:
        client = BrapiClient(base_url="https://brapi.test/api", api_key="", retries=3, transport=httpx.MockTransport(handler))
        pooled = client._client
        with pytest.raises(httpx.ConnectError):
            await client.get_prime_rate_history()
        assert len(attempts) == 3
        assert client._client is pooled
        assert attempts[0].headers["Accept"] == "application/json"

        await client.close()
        assert pooled.is_closed

    asyncio.run(_run())
