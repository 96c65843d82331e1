"""
Rate-limit-aware JSON GET.

Thin wrapper around httpx shared by every upstream client. Maps transport
and HTTP failures onto the hydration error taxonomy; quota exhaustion is
reported with the upstream's reset time so the caller can back off.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

import httpx

from src.errors import MalformedResponse, RateLimited, UpstreamError

logger = logging.getLogger(__name__)

JSON_ACCEPT = "application/json"


def rate_limit_reset(response: httpx.Response) -> Optional[int]:
    """
    Return the reset time (epoch millis) if the response signals quota
    exhaustion, 0 if it does without a usable reset header, else None.
    """
    if response.status_code not in (403, 429):
        return None
    if response.headers.get("x-ratelimit-remaining") != "0":
        return None
    try:
        reset_seconds = float(response.headers.get("x-ratelimit-reset", ""))
    except ValueError:
        return 0
    if not math.isfinite(reset_seconds) or reset_seconds <= 0:
        return 0
    return int(reset_seconds * 1000)


async def get_json(
    http: httpx.AsyncClient,
    url: str,
    *,
    upstream: str,
    params: Optional[dict] = None,
    headers: Optional[dict[str, str]] = None,
    accept: str = JSON_ACCEPT,
    timeout: float = 10.0,
) -> Any:
    """
    GET url and decode its JSON body.

    Raises RateLimited, UpstreamError or MalformedResponse.
    """
    request_headers = {"Accept": accept, **(headers or {})}
    try:
        response = await http.get(
            url, params=params, headers=request_headers, timeout=timeout
        )
    except httpx.HTTPError as exc:
        logger.error("%s request failed: %s %s -> %s", upstream, "GET", url, exc)
        raise UpstreamError(f"Connection error: {exc}") from exc

    reset_at = rate_limit_reset(response)
    if reset_at is not None:
        raise RateLimited(upstream, reset_at)

    if not response.is_success:
        raise UpstreamError(
            f"{upstream} returned {response.status_code}",
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise MalformedResponse(f"{upstream} returned invalid JSON: {exc}") from exc
