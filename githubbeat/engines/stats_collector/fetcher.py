"""Resource fetcher — one fetch per GitHub resource kind, each returning a SubResult.

The fetcher is a pass-through over :class:`GitHubClient`.  It never raises
for fetch failures or cycle cancellation: the error lands in the
``SubResult.error`` slot and the value falls back to an empty default.
Retries and rate-limit waits stay inside the client.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog

from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.github_client import GitHubClient, RateLimitError
from githubbeat.engines.stats_collector.models import RepositoryIdentity, SubResult
from githubbeat.exceptions import CycleCancelledError, FetchError

log = structlog.get_logger("githubbeat.fetcher")

T = TypeVar("T", dict, list)

# Errors the client can surface for one request; ValueError covers bad JSON
# and InvalidURL a target name that cannot be put in a path.
_CLIENT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, RateLimitError, ValueError)


class ResourceFetcher:
    """Fetch repository and organization resources within a cycle context."""

    def __init__(self, client: GitHubClient, *, max_pages: int = 10) -> None:
        self._client = client
        self._max_pages = max_pages

    # ── repository resources ───────────────────────────────────────────────

    async def get_repository(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[dict[str, Any]]:
        """GET /repos/{owner}/{repo}"""
        return await self._fetch(
            ctx, "repository", lambda: self._client.get(f"/repos/{owner}/{name}"), dict
        )

    async def get_license(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/license"""
        return await self._fetch(
            ctx, "license", lambda: self._client.get(f"/repos/{owner}/{name}/license"), dict
        )

    async def list_forks(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[list[dict[str, Any]]]:
        """GET /repos/{owner}/{repo}/forks"""
        return await self._fetch_all(ctx, "forks", f"/repos/{owner}/{name}/forks")

    async def list_contributors(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[list[dict[str, Any]]]:
        """GET /repos/{owner}/{repo}/contributors"""
        return await self._fetch_all(ctx, "contributors", f"/repos/{owner}/{name}/contributors")

    async def list_branches(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[list[dict[str, Any]]]:
        """GET /repos/{owner}/{repo}/branches"""
        return await self._fetch_all(ctx, "branches", f"/repos/{owner}/{name}/branches")

    async def list_languages(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/languages — language → byte count."""
        return await self._fetch(
            ctx, "languages", lambda: self._client.get(f"/repos/{owner}/{name}/languages"), dict
        )

    async def get_participation(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/stats/participation — weekly commit counts."""
        return await self._fetch(
            ctx,
            "participation",
            lambda: self._client.get(f"/repos/{owner}/{name}/stats/participation"),
            dict,
        )

    async def list_releases(
        self, ctx: CycleContext, owner: str, name: str
    ) -> SubResult[list[dict[str, Any]]]:
        """GET /repos/{owner}/{repo}/releases"""
        return await self._fetch_all(ctx, "releases", f"/repos/{owner}/{name}/releases")

    # ── organization resources ─────────────────────────────────────────────

    async def list_org_repositories(
        self, ctx: CycleContext, org: str
    ) -> SubResult[list[RepositoryIdentity]]:
        """GET /orgs/{org}/repos, reduced to repository identities."""
        result = await self._fetch_all(ctx, "org_repositories", f"/orgs/{org}/repos")
        identities = []
        for item in result.value:
            if not isinstance(item, dict):
                continue
            owner = (item.get("owner") or {}).get("login") or org
            name = item.get("name")
            if name:
                identities.append(RepositoryIdentity(owner, name))
        return SubResult(identities, result.error)

    # ── internal ───────────────────────────────────────────────────────────

    async def _fetch_all(
        self, ctx: CycleContext, resource: str, path: str
    ) -> SubResult[list[dict[str, Any]]]:
        return await self._fetch(
            ctx,
            resource,
            lambda: self._client.get_all(path, max_pages=self._max_pages),
            list,
        )

    async def _fetch(
        self,
        ctx: CycleContext,
        resource: str,
        call: Callable[[], Awaitable[Any]],
        default: Callable[[], T],
    ) -> SubResult[T]:
        """Run *call* inside *ctx* and fold any failure into the result."""
        done = ctx.error
        if done is not None:
            # Never start a request on a finished cycle.
            return SubResult(default(), type(done)(str(done)))

        try:
            value = await ctx.run(call())
        except CycleCancelledError as exc:
            log.debug("fetcher.cancelled", resource=resource, error=str(exc))
            return SubResult(default(), exc)
        except _CLIENT_ERRORS as exc:
            err = FetchError.from_exception(resource, exc)
            log.debug(
                "fetcher.failed",
                resource=resource,
                status=err.status_code,
                error=str(exc),
            )
            return SubResult(default(), err)

        if value is None:
            return SubResult(default())
        expected = type(default())
        if not isinstance(value, expected):
            return SubResult(
                default(),
                FetchError(resource, f"unexpected payload type {type(value).__name__}"),
            )
        return SubResult(value)
