"""Async GitHub REST client: pagination, rate-limit waits, retries on 5xx."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import structlog

log = structlog.get_logger("githubbeat.github")

DEFAULT_API_URL = "https://api.github.com"

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

_ATTEMPTS = 3
_BACKOFF_SECONDS = 1.0
_FALLBACK_WAIT = 60

# 202 while GitHub is still computing repository statistics, 204 for empty
# repositories; neither carries a usable body.
_NO_CONTENT_STATUSES = frozenset({202, 204})


class RateLimitError(Exception):
    """The rate limit stayed exhausted for every attempt of a request."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


class GitHubClient:
    """Shared REST client for one beat.

    Runs unauthenticated when no token is given (GitHub then applies a much
    lower rate limit).  Renamed and transferred repositories answer with a
    301, which is followed.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "githubbeat",
        }
        if token:
            headers["Authorization"] = f"token {token}"
        self.authenticated = bool(token)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ── requests ───────────────────────────────────────────────────────────

    async def verify_token(self) -> None:
        """List one of the authenticated user's repositories.

        Raises ``httpx.HTTPStatusError`` when GitHub rejects the credentials.
        """
        response = await self._request_with_retry("/user/repos", {"per_page": 1})
        await self._check_rate_limit(response)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Fetch one resource; ``None`` when GitHub sent no body."""
        response = await self._request_with_retry(path, params)
        await self._check_rate_limit(response)
        return self._decode(response)

    async def get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        max_pages: int = 10,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield the items of a list endpoint, following ``rel="next"`` links.

        Query parameters apply to the first page only; later pages carry
        them in the link GitHub returns.
        """
        query = {"per_page": 100, **(params or {})}
        url: str | None = path
        for page in range(max_pages):
            if url is None:
                return
            response = await self._request_with_retry(url, query if page == 0 else None)
            await self._check_rate_limit(response)
            items = self._decode(response)
            if isinstance(items, list):
                for item in items:
                    yield item
            url = self._parse_next_link(response.headers.get("Link", ""))

    async def get_all(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        max_pages: int = 10,
    ) -> list[dict[str, Any]]:
        return [item async for item in self.get_paginated(path, params, max_pages=max_pages)]

    async def _request_with_retry(
        self, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """GET *url*, retrying server errors, timeouts and rate-limit 403s.

        Other 4xx responses raise ``httpx.HTTPStatusError`` immediately.
        """
        failure: Exception | None = None
        for attempt in range(1, _ATTEMPTS + 1):
            try:
                resp = await self._client.get(url, params=params)
            except httpx.TimeoutException as exc:
                log.warning("github.timeout", url=url, attempt=attempt)
                failure = exc
            else:
                if resp.status_code == 403 and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    log.warning("github.rate_limit", url=url, wait_seconds=wait, attempt=attempt)
                    await asyncio.sleep(wait)
                    failure = RateLimitError(wait)
                    continue
                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp
                log.warning("github.server_error", url=url, status=resp.status_code, attempt=attempt)
                failure = httpx.HTTPStatusError(
                    f"server error {resp.status_code}", request=resp.request, response=resp
                )

            if attempt < _ATTEMPTS:
                await asyncio.sleep(_BACKOFF_SECONDS * 2 ** (attempt - 1))

        assert failure is not None
        raise failure

    async def _check_rate_limit(self, response: httpx.Response) -> None:
        """Pause until the window resets when this response used the last call."""
        if self._parse_header_int(response.headers.get("X-RateLimit-Remaining")) == 0:
            wait = self._get_rate_limit_wait(response)
            log.warning("github.rate_limit_wait", wait_seconds=wait)
            await asyncio.sleep(wait)

    # ── response helpers ───────────────────────────────────────────────────

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code in _NO_CONTENT_STATUSES or not response.content:
            return None
        return response.json()

    @classmethod
    def _is_rate_limited(cls, response: httpx.Response) -> bool:
        remaining = cls._parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining is not None:
            return remaining == 0
        # Secondary rate limits only send Retry-After.
        return "Retry-After" in response.headers

    @classmethod
    def _get_rate_limit_wait(cls, response: httpx.Response) -> int:
        """Seconds to wait: Retry-After, else until X-RateLimit-Reset, else 60."""
        retry_after = cls._parse_header_int(response.headers.get("Retry-After"))
        if retry_after is not None:
            return max(retry_after, 1)
        reset_at = cls._parse_header_int(response.headers.get("X-RateLimit-Reset"))
        if reset_at is not None:
            return max(reset_at - int(time.time()), 1)
        return _FALLBACK_WAIT

    @staticmethod
    def _parse_header_int(value: str | None) -> int | None:
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        match = _NEXT_LINK_RE.search(link_header)
        return match.group(1) if match else None
