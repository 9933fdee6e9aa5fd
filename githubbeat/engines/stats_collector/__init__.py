"""Stats collector engine — repository statistics collection for one cycle."""

from githubbeat.engines.stats_collector.aggregator import RepositoryAggregator
from githubbeat.engines.stats_collector.fetcher import ResourceFetcher
from githubbeat.engines.stats_collector.github_client import GitHubClient, RateLimitError
from githubbeat.engines.stats_collector.models import (
    CycleReport,
    PartialEventPolicy,
    RepoEvent,
    RepositoryIdentity,
    SubResult,
)
from githubbeat.engines.stats_collector.resolver import Resolution, TargetResolver
from githubbeat.engines.stats_collector.runner import StatsCollectorRunner

__all__ = [
    "CycleReport",
    "GitHubClient",
    "PartialEventPolicy",
    "RateLimitError",
    "RepoEvent",
    "RepositoryAggregator",
    "RepositoryIdentity",
    "Resolution",
    "ResourceFetcher",
    "StatsCollectorRunner",
    "SubResult",
    "TargetResolver",
]
