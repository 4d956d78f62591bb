"""Binance spot REST client for historical price lookups."""

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx

from core.models.market import PricePoint


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 1200):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            now = asyncio.get_running_loop().time()
            wait_time = self.last_call + self.interval - now
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = asyncio.get_running_loop().time()


class BinanceRestClient:
    """Binance spot market-data REST client."""

    BASE_URL = "https://api.binance.com"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str = "",
        calls_per_minute: int = 1200,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or self.BASE_URL
        self.api_key = api_key
        self.rate_limiter = RateLimiter(calls_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.api_key:
                headers["X-MBX-APIKEY"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=30.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make an API request with rate limiting."""
        await self.rate_limiter.acquire()
        client = await self._get_client()
        response = await client.request(method, endpoint, params=params)
        response.raise_for_status()
        return response.json()

    async def get_klines(
        self,
        pair: str,
        interval: str,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        limit: int = 1000,
    ) -> list[PricePoint]:
        """
        Fetch candle closes from Binance.

        Args:
            pair: Trading pair (e.g., "BTCUSDT")
            interval: Candle interval (e.g., "1m", "1h")
            start_time: Start time (inclusive)
            end_time: End time (inclusive)
            limit: Maximum number of candles (max 1000)

        Returns:
            List of PricePoint stamped with the candle open time
        """
        params: dict[str, Any] = {
            "symbol": pair.upper(),
            "interval": interval,
            "limit": min(limit, 1000),
        }

        if start_time:
            params["startTime"] = int(start_time.timestamp() * 1000)
        if end_time:
            params["endTime"] = int(end_time.timestamp() * 1000)

        data = await self._request("GET", "/api/v3/klines", params)

        return [
            PricePoint(
                time=datetime.fromtimestamp(item[0] / 1000, tz=timezone.utc),
                close=float(item[4]),
            )
            for item in data
        ]

    async def get_price_at(self, pair: str, at: datetime) -> float | None:
        """Close of the 1m candle opening at `at` (or the first one after it)."""
        klines = await self.get_klines(pair, "1m", start_time=at, limit=1)
        if not klines:
            return None
        return klines[0].close
