"""Tests for the rate-limit-aware JSON fetch wrapper."""

import httpx
import pytest

from src.errors import MalformedResponse, RateLimited, UpstreamError
from src.fetch import get_json, rate_limit_reset


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRateLimitReset:
    def test_exhausted_with_reset(self):
        response = httpx.Response(
            403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"}
        )
        assert rate_limit_reset(response) == 1_700_000_000_000

    def test_exhausted_without_reset(self):
        response = httpx.Response(403, headers={"x-ratelimit-remaining": "0"})
        assert rate_limit_reset(response) == 0

    def test_forbidden_with_quota_left_is_not_a_limit(self):
        response = httpx.Response(403, headers={"x-ratelimit-remaining": "12"})
        assert rate_limit_reset(response) is None

    def test_other_status_is_not_a_limit(self):
        response = httpx.Response(500, headers={"x-ratelimit-remaining": "0"})
        assert rate_limit_reset(response) is None


class TestGetJson:
    @pytest.mark.asyncio
    async def test_returns_decoded_body_and_sends_accept(self):
        seen = {}

        def handler(request):
            seen["accept"] = request.headers["accept"]
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as http:
            body = await get_json(
                http, "https://api.test/x", upstream="test", params={"per_page": "10"}
            )
        assert body == {"ok": True}
        assert seen["accept"] == "application/json"
        assert seen["params"] == {"per_page": "10"}

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        def handler(request):
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"},
                json={"message": "API rate limit exceeded"},
            )

        async with _client(handler) as http:
            with pytest.raises(RateLimited) as excinfo:
                await get_json(http, "https://api.test/x", upstream="github")
        assert excinfo.value.upstream == "github"
        assert excinfo.value.reset_at == 1_700_000_000_000

    @pytest.mark.asyncio
    async def test_plain_forbidden_is_upstream_error(self):
        async with _client(lambda r: httpx.Response(403, json={})) as http:
            with pytest.raises(UpstreamError) as excinfo:
                await get_json(http, "https://api.test/x", upstream="github")
        assert excinfo.value.status_code == 403

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with _client(lambda r: httpx.Response(404, json={})) as http:
            with pytest.raises(UpstreamError) as excinfo:
                await get_json(http, "https://api.test/x", upstream="github")
        assert excinfo.value.status_code == 404

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as http:
            with pytest.raises(UpstreamError) as excinfo:
                await get_json(http, "https://api.test/x", upstream="github")
        assert excinfo.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with _client(lambda r: httpx.Response(200, text="<html>")) as http:
            with pytest.raises(MalformedResponse):
                await get_json(http, "https://api.test/x", upstream="euphoria")
