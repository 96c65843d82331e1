"""
Async client for the Euphoria Development API (statistics and donators).
"""

from __future__ import annotations

from typing import Any

import httpx

from src.errors import MalformedResponse
from src.fetch import get_json

UPSTREAM = "euphoria"


class EuphoriaClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = "https://api.euphoriadevelopment.uk",
        timeout: float = 10.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch_stats(self) -> dict[str, Any]:
        """Fetch the statistics document. Raises MalformedResponse if not an object."""
        data = await self._get("/stats/")
        if not isinstance(data, dict):
            raise MalformedResponse("Statistics document is not an object")
        return data

    async def fetch_donators(self) -> list[dict[str, Any]]:
        """Fetch the donator list; a non-list body counts as no donators."""
        data = await self._get("/donators")
        if not isinstance(data, list):
            return []
        return [d for d in data if isinstance(d, dict)]

    async def _get(self, path: str) -> Any:
        return await get_json(
            self._http,
            f"{self._base_url}{path}",
            upstream=UPSTREAM,
            timeout=self._timeout,
        )
