"""Test doubles and GitHub payload builders shared by the githubbeat tests.

``FakeGitHubClient`` answers ``get``/``get_all`` from a path → payload map,
with optional per-path delays and errors, so the real fetcher, aggregator
and resolver run unmodified on top of it.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

HELLO = "/repos/octocat/Hello-World"


def http_error(status: int, path: str = "/") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", f"https://api.github.com{path}")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"{status} for {path}", request=request, response=response)


class FakeGitHubClient:
    """Route-table stand-in for GitHubClient."""

    def __init__(
        self,
        routes: dict[str, Any] | None = None,
        *,
        delays: dict[str, float] | None = None,
        authenticated: bool = False,
    ) -> None:
        self.routes = dict(routes or {})
        self.delays = dict(delays or {})
        self.authenticated = authenticated
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def _respond(self, path: str) -> Any:
        self.calls.append(path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(path)
            if delay:
                await asyncio.sleep(delay)
            if path not in self.routes:
                raise http_error(404, path)
            value = self.routes[path]
            if isinstance(value, BaseException):
                raise value
            return value
        finally:
            self.in_flight -= 1

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._respond(path)

    async def get_all(
        self, path: str, params: dict[str, Any] | None = None, *, max_pages: int = 10
    ) -> Any:
        return await self._respond(path)

    async def verify_token(self) -> None:
        self.calls.append("/user/repos")

    async def close(self) -> None:
        self.closed = True


class RecordingSink:
    """EventSink that keeps every published event in memory."""

    def __init__(self) -> None:
        self.events = []
        self.closed = False

    def publish(self, event) -> None:
        self.events.append(event)

    def close(self) -> None:
        self.closed = True


def repo_payload(owner: str, name: str, **counts: int) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": name,
        "owner": {"login": owner},
        "stargazers_count": 80,
        "forks_count": 9,
        "watchers_count": 80,
        "open_issues_count": 2,
        "subscribers_count": 42,
        "network_count": 9,
        "size": 108,
    }
    payload.update(counts)
    return payload


def repository_routes(owner: str = "octocat", name: str = "Hello-World") -> dict[str, Any]:
    """Every endpoint the aggregator touches for one repository."""
    base = f"/repos/{owner}/{name}"
    return {
        base: repo_payload(owner, name),
        f"{base}/license": {
            "path": "LICENSE",
            "sha": "c6ef9e1",
            "license": {"key": "mit", "name": "MIT License", "spdx_id": "MIT"},
        },
        f"{base}/forks": [repo_payload("forker", name, stargazers_count=1, forks_count=0)],
        f"{base}/contributors": [
            {"login": "octocat", "contributions": 32},
            {"login": "hubot", "contributions": 3},
        ],
        f"{base}/branches": [
            {"name": "master", "commit": {"sha": "7fd1a60"}},
            {"name": "test", "commit": {"sha": "b3cbd5b"}},
        ],
        f"{base}/languages": {"Python": 300, "C": 100},
        f"{base}/stats/participation": {"all": [3, 5, 2], "owner": [1, 1, 0]},
        f"{base}/releases": [
            {
                "id": 1,
                "name": "v1.0",
                "assets": [{"download_count": 10}, {"download_count": 5}],
            },
            {"id": 2, "name": "v1.1", "assets": []},
        ],
    }


