"""
GitHub REST API client.

Requests go through one circuit breaker per top-level API segment
(``github-api-repos``, ``github-api-user``), are retried with backoff on rate
limiting and network errors, and are cached in memory and Redis. When GitHub
cannot be reached the client serves the last good response it saw, then an
empty list for list endpoints, and otherwise fails with SERVICE_UNAVAILABLE.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from ..cache import MemoryCache, MultiLevelCache, get_cache
from ..circuit_breaker import CircuitOpenError, get_circuit_breaker
from ..config import get_config
from ..errors import AppError, ErrorCode, create_app_error
from ..logging import get_logger

logger = get_logger("github.client")

DEFAULT_HEADERS = {"Accept": "application/vnd.github.v3+json"}
RETRY_DELAYS: Sequence[float] = (1, 2, 4, 8, 16)
STALE_TTL = 24 * 60 * 60

BREAKER_OPTIONS = {"failure_threshold": 5, "reset_timeout": 60.0, "timeout": None}


class RetryableRequestError(Exception):
    """Rate limit or transport failure that is worth another attempt."""


class GitHubClient:
    """Authenticated client for one GitHub access token."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[MultiLevelCache] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        retry_delays: Sequence[float] = RETRY_DELAYS,
    ) -> None:
        config = get_config()
        self.access_token = access_token
        self.base_url = config.github.api_url.rstrip("/")
        self.client = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=config.github.request_timeout
        )
        self.cache = cache or MultiLevelCache(
            redis_cache=get_cache(),
            memory_ttl=config.github.memory_cache_ttl,
            redis_ttl=config.github.redis_cache_ttl,
        )
        self._stale = MemoryCache(max_entries=2000)
        self._sleep = sleep
        self.retry_delays = retry_delays
        self.rate_limit: Optional[Dict[str, int]] = None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {**DEFAULT_HEADERS, "Authorization": f"token {self.access_token}"}

    @staticmethod
    def _breaker_name(endpoint: str) -> str:
        segment = endpoint.lstrip("/").split("/")[0].split("?")[0]
        return f"github-api-{segment or 'general'}"

    def _update_rate_limit(self, response: httpx.Response) -> None:
        limit = response.headers.get("x-ratelimit-limit")
        remaining = response.headers.get("x-ratelimit-remaining")
        reset = response.headers.get("x-ratelimit-reset")
        if limit and remaining and reset:
            self.rate_limit = {
                "limit": int(limit),
                "remaining": int(remaining),
                "used": int(limit) - int(remaining),
                "reset": int(reset),
            }

    async def _send(self, endpoint: str, params: Optional[Dict[str, Any]]) -> Any:
        """Single HTTP round trip."""
        try:
            response = await self.client.get(
                endpoint, params=params, headers=self._headers()
            )
        except httpx.TransportError as e:
            raise RetryableRequestError(f"Network error: {e}") from e

        self._update_rate_limit(response)
        if response.is_success:
            return response.json()

        if (
            response.status_code == 403
            and response.headers.get("x-ratelimit-remaining") == "0"
        ):
            raise RetryableRequestError("GitHub API rate limit exceeded")

        try:
            message = response.json().get("message")
        except ValueError:
            message = None
        logger.error(
            "GitHub API error", endpoint=endpoint, status=response.status_code, message=message
        )
        if response.status_code == 404:
            raise create_app_error(ErrorCode.NOT_FOUND, message or f"Not found: {endpoint}")
        if response.status_code == 401:
            raise create_app_error(
                ErrorCode.UNAUTHORIZED, message or "GitHub access token is invalid"
            )
        raise AppError(
            ErrorCode.GITHUB_API_ERROR,
            message or f"GitHub API error: {response.status_code}",
            502,
            details={"status": response.status_code},
        )

    async def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        cache_key: Optional[str] = None,
        is_list: bool = False,
    ) -> Any:
        """GET ``endpoint`` through cache, breaker, retries and fallbacks."""
        if cache_key:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached

        breaker = get_circuit_breaker(self._breaker_name(endpoint), **BREAKER_OPTIONS)
        attempt = 0
        while True:
            try:
                data = await breaker.execute(lambda: self._send(endpoint, params))
                break
            except RetryableRequestError as e:
                if attempt >= len(self.retry_delays):
                    logger.error("GitHub request failed after retries", endpoint=endpoint)
                    return self._fallback(endpoint, cache_key, is_list, e)
                delay = self.retry_delays[attempt]
                logger.warning(
                    "Retrying GitHub request",
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    delay=delay,
                    reason=str(e),
                )
                attempt += 1
                await self._sleep(delay)
            except CircuitOpenError as e:
                return self._fallback(endpoint, cache_key, is_list, e)

        if cache_key:
            await self.cache.set(cache_key, data)
            self._stale.set(cache_key, data, STALE_TTL)
        return data

    def _fallback(
        self, endpoint: str, cache_key: Optional[str], is_list: bool, error: Exception
    ) -> Any:
        if cache_key:
            stale = self._stale.get(cache_key)
            if stale is not None:
                logger.warning("GitHub unavailable, serving cached data", endpoint=endpoint)
                return stale
        if is_list:
            logger.warning("GitHub unavailable, returning empty result", endpoint=endpoint)
            return []
        raise create_app_error(
            ErrorCode.SERVICE_UNAVAILABLE,
            f"GitHub API is currently unavailable ({endpoint})",
        ) from error

    async def get_user(self) -> Dict[str, Any]:
        return await self._request("/user")

    async def get_user_repositories(self) -> List[Dict[str, Any]]:
        return await self._request(
            "/user/repos",
            params={"sort": "updated", "per_page": 100},
            cache_key=f"user_repos_{self.access_token[-8:]}",
            is_list=True,
        )

    async def get_repository(self, full_name: str) -> Dict[str, Any]:
        return await self._request(
            f"/repos/{full_name}", cache_key=f"repo_details_{full_name}"
        )

    async def get_commits(
        self, full_name: str, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"per_page": 100}
        if since is not None:
            params["since"] = since.astimezone(timezone.utc).isoformat()
        return await self._request(
            f"/repos/{full_name}/commits",
            params=params,
            cache_key=f"commits_{full_name}_{params.get('since', 'all')}",
            is_list=True,
        )

    async def get_commit(self, full_name: str, sha: str) -> Dict[str, Any]:
        return await self._request(
            f"/repos/{full_name}/commits/{sha}",
            cache_key=f"commit_details_{full_name}_{sha}",
        )

    async def get_pull_requests(
        self, full_name: str, state: str = "all"
    ) -> List[Dict[str, Any]]:
        return await self._request(
            f"/repos/{full_name}/pulls",
            params={"state": state, "per_page": 100},
            cache_key=f"prs_{full_name}_{state}",
            is_list=True,
        )

    async def get_pull_request(self, full_name: str, number: int) -> Dict[str, Any]:
        return await self._request(
            f"/repos/{full_name}/pulls/{number}",
            cache_key=f"pr_details_{full_name}_{number}",
        )

    async def get_pull_request_reviews(
        self, full_name: str, number: int
    ) -> List[Dict[str, Any]]:
        return await self._request(
            f"/repos/{full_name}/pulls/{number}/reviews",
            params={"per_page": 100},
            cache_key=f"pr_reviews_{full_name}_{number}",
            is_list=True,
        )

    async def get_issues(self, full_name: str, state: str = "all") -> List[Dict[str, Any]]:
        return await self._request(
            f"/repos/{full_name}/issues",
            params={"state": state, "per_page": 100},
            cache_key=f"issues_{full_name}_{state}",
            is_list=True,
        )

    async def invalidate_repository_cache(self, full_name: str) -> None:
        """Drop cached responses for a repository before a sync."""
        key = f"repo_details_{full_name}"
        await self.cache.delete(key)
        self._stale.delete(key)
        for kind in ("commits", "commit_details", "prs", "pr_details", "pr_reviews", "issues"):
            prefix = f"{kind}_{full_name}_"
            await self.cache.delete_prefix(prefix)
            self._stale.delete_prefix(prefix)


async def exchange_oauth_code(
    code: str, http_client: Optional[httpx.AsyncClient] = None
) -> str:
    """Trade an OAuth callback code for an access token."""
    config = get_config()
    client = http_client or httpx.AsyncClient(timeout=config.github.request_timeout)
    try:
        response = await client.post(
            config.github.token_url,
            data={
                "client_id": config.github.client_id,
                "client_secret": config.github.client_secret,
                "code": code,
            },
            headers={"Accept": "application/json"},
        )
    except httpx.TransportError as e:
        raise create_app_error(ErrorCode.NETWORK_ERROR, f"GitHub OAuth failed: {e}") from e
    finally:
        if http_client is None:
            await client.aclose()

    payload = response.json() if response.is_success else {}
    token = payload.get("access_token")
    if not token:
        logger.warning(
            "GitHub OAuth code exchange failed",
            status=response.status_code,
            error=payload.get("error"),
        )
        raise create_app_error(
            ErrorCode.UNAUTHORIZED,
            payload.get("error_description") or "GitHub authorization failed",
        )
    return str(token)
