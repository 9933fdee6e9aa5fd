"""Target resolver — expand configured repos and orgs into repository identities."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.fetcher import ResourceFetcher
from githubbeat.engines.stats_collector.models import (
    OrganizationTarget,
    RepositoryIdentity,
    RepositoryTarget,
    TargetError,
    parse_organization,
    parse_repository,
    parse_target,
)
from githubbeat.exceptions import FetchError, TargetFormatError

log = structlog.get_logger("githubbeat.resolver")


@dataclass
class Resolution:
    """Identities to collect this cycle, plus every per-target failure."""

    identities: list[RepositoryIdentity] = field(default_factory=list)
    errors: list[TargetError] = field(default_factory=list)


def parse_targets(
    repos: Sequence[str] = (),
    orgs: Sequence[str] = (),
    targets: Sequence[str] = (),
) -> tuple[list[RepositoryTarget], list[OrganizationTarget], list[TargetError]]:
    """Parse the configured target lists, rejecting malformed entries one by one."""
    repo_targets: list[RepositoryTarget] = []
    org_targets: list[OrganizationTarget] = []
    errors: list[TargetError] = []

    def _add(text: str, parser) -> None:
        try:
            target = parser(text)
        except TargetFormatError as exc:
            log.error("resolver.invalid_target", target=text, error=str(exc))
            errors.append(TargetError(text, exc))
            return
        if isinstance(target, RepositoryTarget):
            repo_targets.append(target)
        else:
            org_targets.append(target)

    for text in repos:
        _add(text, parse_repository)
    for text in orgs:
        _add(text, parse_organization)
    for text in targets:
        _add(text, parse_target)
    return repo_targets, org_targets, errors


class TargetResolver:
    """Resolve explicit repositories and whole organizations for one cycle."""

    def __init__(
        self,
        fetcher: ResourceFetcher,
        *,
        repos: Sequence[str] = (),
        orgs: Sequence[str] = (),
        targets: Sequence[str] = (),
    ) -> None:
        self._fetcher = fetcher
        self._repos = list(repos)
        self._orgs = list(orgs)
        self._targets = list(targets)

    async def resolve(self, ctx: CycleContext) -> Resolution:
        """Return the flat identity list; no ordering or dedup guarantee."""
        repo_targets, org_targets, errors = parse_targets(
            self._repos, self._orgs, self._targets
        )
        resolution = Resolution(
            identities=[target.identity() for target in repo_targets],
            errors=errors,
        )

        listings = await asyncio.gather(
            *(self._fetcher.list_org_repositories(ctx, org.name) for org in org_targets),
            return_exceptions=True,
        )
        for org, listing in zip(org_targets, listings, strict=True):
            if isinstance(listing, BaseException):
                if isinstance(listing, asyncio.CancelledError):
                    raise listing
                log.error(
                    "resolver.org_crashed",
                    org=org.name,
                    error=f"{type(listing).__name__}: {listing}",
                )
                resolution.errors.append(
                    TargetError(org.name, FetchError.from_exception("org_repositories", listing))
                )
                continue
            if listing.error is not None:
                log.error("resolver.org_failed", org=org.name, error=str(listing.error))
                resolution.errors.append(TargetError(org.name, listing.error))
                continue
            log.debug("resolver.org_listed", org=org.name, repositories=len(listing.value))
            resolution.identities.extend(listing.value)

        return resolution
