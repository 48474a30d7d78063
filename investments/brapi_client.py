"""
BrapiClient — async client for the Brapi market-data API.

Responsibility:
- Daily quote histories (`/quote/{ticker}`, falling back to `/v2/quote/{ticker}`)
- Prime-rate (Selic) histories (`/v2/prime-rate`)
- Token as query parameter, retries with linear backoff, TTL cache per URL

Errors are logged and re-raised; callers turn them into flat fallbacks.
"""

import asyncio
import logging
import time
from typing import Any

import httpx

from shared import settings

logger = logging.getLogger(__name__)


class BrapiClient:
    """Thin Brapi client with an in-memory TTL cache."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        retries: int | None = None,
        cache_ttl_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.BRAPI_BASE_URL).rstrip("/")
        self.api_key = settings.BRAPI_API_KEY if api_key is None else api_key
        self.timeout = settings.BRAPI_TIMEOUT_SECONDS if timeout is None else timeout
        self.retries = max(1, settings.BRAPI_RETRIES if retries is None else retries)
        self.cache_ttl_seconds = settings.BRAPI_CACHE_TTL_SECONDS if cache_ttl_seconds is None else cache_ttl_seconds
        self._cache: dict[str, tuple[float, Any]] = {}
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def get_quote_history(self, ticker: str, interval: str = "1d", range: str = "max") -> dict[str, Any]:
        symbol = str(ticker or "").strip().upper()
        params = {"interval": interval, "range": range}
        try:
            return await self._request(f"/quote/{symbol}", params)
        except httpx.HTTPError:
            logger.info("Brapi /quote/%s failed, trying /v2/quote", symbol)
            return await self._request(f"/v2/quote/{symbol}", params)

    async def get_prime_rate_history(
        self,
        country: str = "brazil",
        start: str | None = None,
        end: str | None = None,
    ) -> dict[str, Any]:
        """`start` / `end` use the DD/MM/YYYY format expected by Brapi."""
        params = {
            "country": country,
            "historical": "true",
            "start": start,
            "end": end,
            "sortBy": "date",
            "sortOrder": "asc",
        }
        return await self._request("/v2/prime-rate", params)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, endpoint: str, params: dict[str, Any]) -> Any:
        query = {key: str(value) for key, value in params.items() if value is not None}
        if self.api_key:
            query["token"] = self.api_key

        url = f"{self.base_url}{endpoint}"
        cache_key = url + "?" + "&".join(f"{k}={v}" for k, v in sorted(query.items()) if k != "token")
        cached = self._cache.get(cache_key)
        if cached is not None and time.monotonic() - cached[0] < self.cache_ttl_seconds:
            logger.debug("Brapi cache hit: %s", endpoint)
            return cached[1]

        last_error: httpx.HTTPError | None = None
        for attempt in range(1, self.retries + 1):
            try:
                response = await self._client.get(url, params=query)
                response.raise_for_status()
                data = response.json()
                self._cache[cache_key] = (time.monotonic(), data)
                return data
            except httpx.HTTPStatusError as e:
                last_error = e
                logger.warning(
                    "Brapi error %s on %s (attempt %d/%d)",
                    e.response.status_code,
                    endpoint,
                    attempt,
                    self.retries,
                )
                if e.response.status_code == 404:
                    break
            except httpx.HTTPError as e:
                last_error = e
                logger.warning("Brapi request failed on %s (attempt %d/%d): %r", endpoint, attempt, self.retries, e)
            if attempt < self.retries:
                await asyncio.sleep(0.25 * attempt)

        if last_error is None:
            raise RuntimeError(f"Brapi request to {endpoint} was not attempted")
        raise last_error
