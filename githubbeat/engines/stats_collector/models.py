"""Data models for the stats collector engine.

Pure data structures — no I/O.  Every sub-resource section carries its own
``error`` slot so a failed fetch is visible in the event instead of being
silently replaced by an empty value.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from githubbeat.core.github import check_organization, split_repository
from githubbeat.exceptions import BeatError

T = TypeVar("T")

EVENT_TYPE = "githubbeat"
PARTICIPATION_PERIOD = "year"


# ── targets ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RepositoryIdentity:
    """Unique key of one repository within a cycle."""

    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class RepositoryTarget:
    owner: str
    name: str

    def identity(self) -> RepositoryIdentity:
        return RepositoryIdentity(self.owner, self.name)


@dataclass(frozen=True)
class OrganizationTarget:
    name: str


Target = RepositoryTarget | OrganizationTarget


def parse_repository(text: str) -> RepositoryTarget:
    """Parse an explicit ``owner/name`` target."""
    owner, name = split_repository(text)
    return RepositoryTarget(owner, name)


def parse_organization(text: str) -> OrganizationTarget:
    return OrganizationTarget(check_organization(text))


def parse_target(text: str) -> Target:
    """Parse a mixed-form target: ``owner/name`` is a repository, a bare token an org."""
    if "/" in text:
        return parse_repository(text)
    return parse_organization(text)


@dataclass
class TargetError:
    """A per-target failure recorded during resolution."""

    target: str
    error: BeatError

    def __str__(self) -> str:
        return f"{self.target}: {self.error}"


# ── fetch results ─────────────────────────────────────────────────────────


@dataclass
class SubResult(Generic[T]):
    """Value-or-error pair produced by every resource fetch."""

    value: T
    error: BeatError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def error_text(error: BaseException | None) -> str | None:
    return None if error is None else str(error)


# ── event sections ────────────────────────────────────────────────────────


@dataclass
class RepositoryStats:
    """Base metadata of a repository (also used to summarise forks)."""

    repo: str
    owner: str
    stargazers: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    subscribers: int = 0
    network: int = 0
    size: int = 0


@dataclass
class Contributor:
    name: str
    contributions: int


@dataclass
class Branch:
    name: str
    sha: str


@dataclass
class LanguageShare:
    lang: str
    bytes: int
    ratio: float | None  # None when the byte total is zero


@dataclass
class ReleaseDownloads:
    id: int
    name: str
    downloads: int


@dataclass
class ListSection(Generic[T]):
    """A list-shaped section: ``{count, items, error}``."""

    items: list[T] = field(default_factory=list)
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "items": [asdict(item) for item in self.items],
            "error": self.error,
        }


@dataclass
class LicenseSection:
    path: str = ""
    sha: str = ""
    key: str | None = None
    name: str | None = None
    spdx_id: str | None = None
    error: str | None = None


@dataclass
class ParticipationSection:
    all: int = 0
    owner: int = 0
    period: str = PARTICIPATION_PERIOD
    error: str | None = None

    @property
    def community(self) -> int:
        return self.all - self.owner

    def to_dict(self) -> dict[str, Any]:
        return {
            "all": self.all,
            "owner": self.owner,
            "community": self.community,
            "period": self.period,
            "error": self.error,
        }


@dataclass
class DownloadsSection:
    releases: list[ReleaseDownloads] = field(default_factory=list)
    error: str | None = None

    @property
    def total_downloads(self) -> int:
        return sum(release.downloads for release in self.releases)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_downloads": self.total_downloads,
            "releases": [asdict(release) for release in self.releases],
            "error": self.error,
        }


# ── event ─────────────────────────────────────────────────────────────────


@dataclass
class RepoEvent:
    """The record handed to the sink for one repository in one cycle."""

    timestamp: datetime
    stats: RepositoryStats
    license: LicenseSection
    fork_list: ListSection[RepositoryStats]
    contributor_list: ListSection[Contributor]
    branch_list: ListSection[Branch]
    languages: ListSection[LanguageShare]
    participation: ParticipationSection
    downloads: DownloadsSection
    type: str = EVENT_TYPE

    @property
    def identity(self) -> RepositoryIdentity:
        return RepositoryIdentity(self.stats.owner, self.stats.repo)

    def section_errors(self) -> dict[str, str]:
        """Map of section name → error for every section that failed."""
        sections = {
            "license": self.license.error,
            "fork_list": self.fork_list.error,
            "contributor_list": self.contributor_list.error,
            "branch_list": self.branch_list.error,
            "languages": self.languages.error,
            "participation": self.participation.error,
            "downloads": self.downloads.error,
        }
        return {name: err for name, err in sections.items() if err is not None}

    def to_dict(self) -> dict[str, Any]:
        """Render the wire form handed to sinks."""
        data: dict[str, Any] = {
            "@timestamp": self.timestamp.isoformat(),
            "type": self.type,
        }
        data.update(asdict(self.stats))
        data["license"] = asdict(self.license)
        data["fork_list"] = self.fork_list.to_dict()
        data["contributor_list"] = self.contributor_list.to_dict()
        data["branch_list"] = self.branch_list.to_dict()
        data["languages"] = self.languages.to_dict()
        data["participation"] = self.participation.to_dict()
        data["downloads"] = self.downloads.to_dict()
        return data


class PartialEventPolicy(str, Enum):
    """What to do with an event whose cycle ended before all sections finished."""

    EMIT = "emit"
    DROP = "drop"


@dataclass
class CycleReport:
    """Summary of a single collection pass."""

    cycle: str
    resolved: int = 0
    published: int = 0
    dropped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
