"""Repository aggregator — fan out every sub-resource fetch, merge into one event.

Only the base repository read is mandatory.  The seven sub-resources are
fetched concurrently; each failure is recorded in its own section and never
cancels or delays the others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog

from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.fetcher import ResourceFetcher
from githubbeat.engines.stats_collector.models import (
    Branch,
    Contributor,
    DownloadsSection,
    LanguageShare,
    LicenseSection,
    ListSection,
    ParticipationSection,
    PartialEventPolicy,
    ReleaseDownloads,
    RepoEvent,
    RepositoryIdentity,
    RepositoryStats,
    SubResult,
    error_text,
)
from githubbeat.exceptions import (
    CycleCancelledError,
    FetchError,
    RepositoryUnavailableError,
)
from githubbeat.sink import EventSink

log = structlog.get_logger("githubbeat.aggregator")

_SECTIONS = (
    "license",
    "fork_list",
    "contributor_list",
    "branch_list",
    "languages",
    "participation",
    "downloads",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryAggregator:
    """Build and publish one :class:`RepoEvent` per repository identity."""

    def __init__(
        self,
        fetcher: ResourceFetcher,
        sink: EventSink,
        *,
        partial_policy: PartialEventPolicy = PartialEventPolicy.EMIT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._sink = sink
        self._partial_policy = partial_policy
        self._clock = clock

    async def collect(self, ctx: CycleContext, identity: RepositoryIdentity) -> RepoEvent | None:
        """Aggregate *identity* and hand the event to the sink.

        Returns the published event, or ``None`` when the partial-event
        policy dropped it.  Raises :class:`RepositoryUnavailableError` when
        the base repository read failed.
        """
        event = await self.aggregate(ctx, identity)
        if event is None:
            return None
        self._sink.publish(event)
        return event

    async def aggregate(
        self, ctx: CycleContext, identity: RepositoryIdentity
    ) -> RepoEvent | None:
        base = await self._fetcher.get_repository(ctx, identity.owner, identity.name)
        if base.error is not None:
            raise RepositoryUnavailableError(identity, base.error)

        stats = extract_repository_stats(base.value, fallback=identity)
        owner, name = stats.owner, stats.repo
        fetcher = self._fetcher

        results = await asyncio.gather(
            fetcher.get_license(ctx, owner, name),
            fetcher.list_forks(ctx, owner, name),
            fetcher.list_contributors(ctx, owner, name),
            fetcher.list_branches(ctx, owner, name),
            fetcher.list_languages(ctx, owner, name),
            fetcher.get_participation(ctx, owner, name),
            fetcher.list_releases(ctx, owner, name),
            return_exceptions=True,
        )

        sections: dict[str, SubResult[Any]] = {}
        for section, result in zip(_SECTIONS, results, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                log.error(
                    "aggregator.section_crashed",
                    repository=str(identity),
                    section=section,
                    error=f"{type(result).__name__}: {result}",
                )
                result = SubResult(None, FetchError(section, f"{type(result).__name__}: {result}"))
            sections[section] = result

        interrupted = [
            section
            for section, result in sections.items()
            if isinstance(result.error, CycleCancelledError)
        ]
        if interrupted and self._partial_policy is PartialEventPolicy.DROP:
            log.info(
                "aggregator.partial_dropped",
                repository=str(identity),
                interrupted=interrupted,
            )
            return None

        event = RepoEvent(
            timestamp=self._clock(),
            stats=stats,
            license=extract_license(sections["license"]),
            fork_list=extract_forks(sections["fork_list"]),
            contributor_list=extract_contributors(sections["contributor_list"]),
            branch_list=extract_branches(sections["branch_list"]),
            languages=extract_languages(sections["languages"]),
            participation=extract_participation(sections["participation"]),
            downloads=extract_downloads(sections["downloads"]),
        )

        for section, error in event.section_errors().items():
            log.warning(
                "aggregator.section_failed",
                repository=str(identity),
                section=section,
                error=error,
            )
        return event


# ── extraction ────────────────────────────────────────────────────────────


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _dicts(items: Any) -> list[dict[str, Any]]:
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def extract_repository_stats(
    payload: Mapping[str, Any] | None,
    *,
    fallback: RepositoryIdentity | None = None,
) -> RepositoryStats:
    """Reduce a GitHub repository object to its counters."""
    payload = payload or {}
    owner = _str((payload.get("owner") or {}).get("login"))
    name = _str(payload.get("name"))
    if fallback is not None:
        owner = owner or fallback.owner
        name = name or fallback.name
    return RepositoryStats(
        repo=name,
        owner=owner,
        stargazers=_int(payload.get("stargazers_count")),
        forks=_int(payload.get("forks_count")),
        watchers=_int(payload.get("watchers_count")),
        open_issues=_int(payload.get("open_issues_count")),
        subscribers=_int(payload.get("subscribers_count")),
        network=_int(payload.get("network_count")),
        size=_int(payload.get("size")),
    )


def extract_license(result: SubResult[Any]) -> LicenseSection:
    payload = result.value if isinstance(result.value, dict) else {}
    section = LicenseSection(
        path=_str(payload.get("path")),
        sha=_str(payload.get("sha")),
        error=error_text(result.error),
    )
    license_info = payload.get("license")
    if isinstance(license_info, dict):
        section.key = license_info.get("key")
        section.name = license_info.get("name")
        section.spdx_id = license_info.get("spdx_id")
    return section


def extract_forks(result: SubResult[Any]) -> ListSection[RepositoryStats]:
    # One level only: forks are summarised, never aggregated themselves.
    forks = [extract_repository_stats(item) for item in _dicts(result.value)]
    return ListSection(forks, error_text(result.error))


def extract_contributors(result: SubResult[Any]) -> ListSection[Contributor]:
    contributors = [
        Contributor(name=_str(item.get("login")), contributions=_int(item.get("contributions")))
        for item in _dicts(result.value)
    ]
    return ListSection(contributors, error_text(result.error))


def extract_branches(result: SubResult[Any]) -> ListSection[Branch]:
    branches = [
        Branch(name=_str(item.get("name")), sha=_str((item.get("commit") or {}).get("sha")))
        for item in _dicts(result.value)
    ]
    return ListSection(branches, error_text(result.error))


def language_shares(byte_counts: Mapping[str, Any]) -> list[LanguageShare]:
    """Turn a language → bytes map into shares of the total.

    An empty map yields no entries; a zero total yields entries whose
    ratio is ``None``.
    """
    counts = {lang: _int(count) for lang, count in byte_counts.items()}
    total = sum(counts.values())
    return [
        LanguageShare(lang=lang, bytes=count, ratio=count / total if total else None)
        for lang, count in counts.items()
    ]


def extract_languages(result: SubResult[Any]) -> ListSection[LanguageShare]:
    byte_counts = result.value if isinstance(result.value, dict) else {}
    return ListSection(language_shares(byte_counts), error_text(result.error))


def extract_participation(result: SubResult[Any]) -> ParticipationSection:
    payload = result.value if isinstance(result.value, dict) else {}
    all_commits = payload.get("all") or []
    owner_commits = payload.get("owner") or []
    return ParticipationSection(
        all=sum(_int(count) for count in all_commits) if isinstance(all_commits, list) else 0,
        owner=sum(_int(count) for count in owner_commits) if isinstance(owner_commits, list) else 0,
        error=error_text(result.error),
    )


def extract_downloads(result: SubResult[Any]) -> DownloadsSection:
    releases = [
        ReleaseDownloads(
            id=_int(release.get("id")),
            name=_str(release.get("name")),
            downloads=sum(_int(asset.get("download_count")) for asset in _dicts(release.get("assets"))),
        )
        for release in _dicts(result.value)
    ]
    return DownloadsSection(releases, error_text(result.error))
