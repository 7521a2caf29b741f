"""
Tests for the GitHub REST client.

HTTP traffic is served by ``httpx.MockTransport``; sleeping between retries
is replaced with an AsyncMock so backoff schedules can be asserted directly.
"""

from typing import Callable, List
from unittest.mock import AsyncMock

import httpx
import pytest

from devpulse.core.cache import MultiLevelCache
from devpulse.core.circuit_breaker import get_all_circuit_breakers
from devpulse.core.errors import AppError, ErrorCode
from devpulse.core.github.client import GitHubClient, exchange_oauth_code

RATE_HEADERS = {
    "x-ratelimit-limit": "5000",
    "x-ratelimit-remaining": "4990",
    "x-ratelimit-reset": "1700000000",
}


class Recorder:
    """Transport handler that replays queued responses and records requests."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


def make_client(handler: Callable, **kwargs) -> GitHubClient:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://api.github.test"
    )
    kwargs.setdefault("sleep", AsyncMock())
    return GitHubClient(
        "gho_secret1234", http_client=http_client, cache=MultiLevelCache(), **kwargs
    )


def rate_limited() -> httpx.Response:
    return httpx.Response(
        403,
        json={"message": "API rate limit exceeded"},
        headers={**RATE_HEADERS, "x-ratelimit-remaining": "0"},
    )


def network_down() -> httpx.ConnectError:
    return httpx.ConnectError("connection refused")


@pytest.mark.unit
class TestGitHubClientRequests:
    """Test successful requests and caching."""

    @pytest.mark.asyncio
    async def test_get_user_sends_token_and_reads_rate_limit(self) -> None:
        """Test the token header is sent and rate limit headers are parsed."""
        recorder = Recorder(
            httpx.Response(200, json={"id": 1, "login": "octocat"}, headers=RATE_HEADERS)
        )
        client = make_client(recorder)

        user = await client.get_user()

        assert user["login"] == "octocat"
        request = recorder.requests[0]
        assert request.headers["authorization"] == "token gho_secret1234"
        assert request.headers["accept"] == "application/vnd.github.v3+json"
        assert client.rate_limit == {
            "limit": 5000,
            "remaining": 4990,
            "used": 10,
            "reset": 1700000000,
        }

    @pytest.mark.asyncio
    async def test_list_responses_are_cached(self) -> None:
        """Test a second call is served from cache."""
        recorder = Recorder(httpx.Response(200, json=[{"id": 1, "full_name": "o/r"}]))
        client = make_client(recorder)

        first = await client.get_user_repositories()
        second = await client.get_user_repositories()

        assert first == second
        assert len(recorder.requests) == 1
        assert recorder.requests[0].url.params["per_page"] == "100"

    @pytest.mark.asyncio
    async def test_invalidate_repository_cache(self) -> None:
        """Test repository lists are refetched after invalidation."""
        recorder = Recorder(httpx.Response(200, json=[{"sha": "abc"}]))
        client = make_client(recorder)

        await client.get_commits("o/r")
        await client.invalidate_repository_cache("o/r")
        await client.get_commits("o/r")

        assert len(recorder.requests) == 2


@pytest.mark.unit
class TestGitHubClientErrors:
    """Test error mapping, retries and fallbacks."""

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_with_backoff(self) -> None:
        """Test rate limited responses are retried on the backoff schedule."""
        recorder = Recorder(
            rate_limited(), rate_limited(), httpx.Response(200, json={"login": "octocat"})
        )
        sleep = AsyncMock()
        client = make_client(recorder, sleep=sleep)

        user = await client.get_user()

        assert user == {"login": "octocat"}
        assert [call.args[0] for call in sleep.await_args_list] == [1, 2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,code",
        [
            (404, ErrorCode.NOT_FOUND),
            (401, ErrorCode.UNAUTHORIZED),
            (500, ErrorCode.GITHUB_API_ERROR),
        ],
    )
    async def test_http_errors_are_mapped(self, status: int, code: ErrorCode) -> None:
        """Test non-retryable statuses fail immediately with a mapped code."""
        recorder = Recorder(httpx.Response(status, json={"message": "nope"}))
        sleep = AsyncMock()
        client = make_client(recorder, sleep=sleep)

        with pytest.raises(AppError) as exc_info:
            await client.get_repository("o/r")

        assert exc_info.value.code == code
        assert exc_info.value.message == "nope"
        sleep.assert_not_awaited()
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_status_is_bad_gateway(self) -> None:
        """Test upstream failures surface as 502 with the upstream status."""
        client = make_client(Recorder(httpx.Response(500, text="oops")))

        with pytest.raises(AppError) as exc_info:
            await client.get_repository("o/r")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details == {"status": 500}

    @pytest.mark.asyncio
    async def test_list_endpoint_falls_back_to_empty(self) -> None:
        """Test exhausted retries on a list endpoint give an empty list."""
        recorder = Recorder(network_down())
        client = make_client(recorder, retry_delays=(0, 0))

        assert await client.get_pull_requests("o/r") == []
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_single_resource_without_cache_is_unavailable(self) -> None:
        """Test exhausted retries on a single resource raise SERVICE_UNAVAILABLE."""
        client = make_client(Recorder(network_down()), retry_delays=())

        with pytest.raises(AppError) as exc_info:
            await client.get_user()

        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_stale_copy_served_when_github_is_down(self) -> None:
        """Test the last good response is served after the cache expires."""
        recorder = Recorder(
            httpx.Response(200, json={"full_name": "o/r", "language": "Go"}),
            network_down(),
        )
        client = make_client(recorder, retry_delays=())

        fresh = await client.get_repository("o/r")
        client.cache.memory.clear()
        stale = await client.get_repository("o/r")

        assert stale == fresh
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self) -> None:
        """Test an open circuit stops outbound calls."""
        recorder = Recorder(network_down())
        client = make_client(recorder, retry_delays=())

        for _ in range(6):
            with pytest.raises(AppError):
                await client.get_user()

        assert len(recorder.requests) == 5
        assert get_all_circuit_breakers()["github-api-user"]["state"] == "OPEN"


@pytest.mark.unit
class TestOAuthExchange:
    """Test trading an OAuth code for a token."""

    def _client(self, handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_returns_access_token(self) -> None:
        """Test a successful exchange."""
        recorder = Recorder(httpx.Response(200, json={"access_token": "gho_new"}))

        token = await exchange_oauth_code("code-1", http_client=self._client(recorder))

        assert token == "gho_new"
        assert b"code=code-1" in recorder.requests[0].content

    @pytest.mark.asyncio
    async def test_rejected_code_is_unauthorized(self) -> None:
        """Test GitHub's error description is surfaced."""
        recorder = Recorder(
            httpx.Response(
                200,
                json={"error": "bad_verification_code", "error_description": "Code expired"},
            )
        )

        with pytest.raises(AppError) as exc_info:
            await exchange_oauth_code("old", http_client=self._client(recorder))

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
        assert exc_info.value.message == "Code expired"

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        """Test transport errors map to NETWORK_ERROR."""
        with pytest.raises(AppError) as exc_info:
            await exchange_oauth_code("c", http_client=self._client(Recorder(network_down())))

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
