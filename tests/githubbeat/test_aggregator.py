"""Tests for RepositoryAggregator and the section extraction helpers."""

from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.aggregator import (
    RepositoryAggregator,
    extract_downloads,
    extract_participation,
    language_shares,
)
from githubbeat.engines.stats_collector.fetcher import ResourceFetcher
from githubbeat.engines.stats_collector.models import (
    PartialEventPolicy,
    RepositoryIdentity,
    SubResult,
)
from githubbeat.exceptions import FetchError, RepositoryUnavailableError
from tests.githubbeat.helpers import (
    HELLO,
    FakeGitHubClient,
    RecordingSink,
    http_error,
    repository_routes,
)

IDENTITY = RepositoryIdentity("octocat", "Hello-World")
FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _aggregator(client, sink=None, **kwargs) -> RepositoryAggregator:
    return RepositoryAggregator(
        ResourceFetcher(client), sink or RecordingSink(), clock=lambda: FIXED_NOW, **kwargs
    )


def _ctx(timeout: float = 5) -> CycleContext:
    return CycleContext.background().with_timeout(timeout)


# ── full aggregation ─────────────────────────────────────────────────────


class TestAggregate:
    @pytest.mark.asyncio
    async def test_full_event(self, client, sink):
        event = await _aggregator(client, sink).collect(_ctx(), IDENTITY)

        assert sink.events == [event]
        assert event.type == "githubbeat"
        assert event.timestamp == FIXED_NOW
        assert event.stats.repo == "Hello-World"
        assert event.stats.owner == "octocat"
        assert event.stats.stargazers == 80
        assert event.stats.subscribers == 42
        assert event.stats.size == 108

        assert event.license.spdx_id == "MIT"
        assert event.license.path == "LICENSE"
        assert event.license.error is None

        assert event.fork_list.count == 1
        assert event.fork_list.items[0].owner == "forker"
        assert [c.name for c in event.contributor_list.items] == ["octocat", "hubot"]
        assert event.contributor_list.items[0].contributions == 32
        assert [(b.name, b.sha) for b in event.branch_list.items] == [
            ("master", "7fd1a60"),
            ("test", "b3cbd5b"),
        ]

        assert event.participation.all == 10
        assert event.participation.owner == 2
        assert event.participation.community == 8
        assert event.participation.period == "year"

        assert event.downloads.total_downloads == 15
        assert [(r.id, r.name, r.downloads) for r in event.downloads.releases] == [
            (1, "v1.0", 15),
            (2, "v1.1", 0),
        ]
        assert event.section_errors() == {}

    @pytest.mark.asyncio
    async def test_forks_are_summarised_one_level(self, client):
        await _aggregator(client).aggregate(_ctx(), IDENTITY)
        assert not any(call.startswith("/repos/forker/") for call in client.calls)

    @pytest.mark.asyncio
    async def test_wire_form(self, client):
        event = await _aggregator(client).aggregate(_ctx(), IDENTITY)
        data = event.to_dict()

        assert data["@timestamp"] == FIXED_NOW.isoformat()
        assert data["type"] == "githubbeat"
        assert data["repo"] == "Hello-World"
        assert data["network"] == 9
        assert data["contributor_list"]["count"] == 2
        assert data["contributor_list"]["items"][1] == {"name": "hubot", "contributions": 3}
        assert data["languages"]["items"][0] == {"lang": "Python", "bytes": 300, "ratio": 0.75}
        assert data["participation"]["community"] == 8
        assert data["downloads"]["total_downloads"] == 15
        assert data["license"]["error"] is None

    @pytest.mark.asyncio
    async def test_idempotent_except_timestamp(self, routes):
        stamps = iter(
            [FIXED_NOW, datetime(2026, 10, 18, 12, 1, tzinfo=timezone.utc)]
        )
        aggregator = RepositoryAggregator(
            ResourceFetcher(FakeGitHubClient(routes)), RecordingSink(), clock=lambda: next(stamps)
        )
        first = await aggregator.aggregate(_ctx(), IDENTITY)
        second = await aggregator.aggregate(_ctx(), IDENTITY)

        assert first.timestamp != second.timestamp
        second.timestamp = first.timestamp
        assert first == second


# ── failures ─────────────────────────────────────────────────────────────


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_license_failure_only_affects_license(self, routes, sink):
        routes[f"{HELLO}/license"] = http_error(404, f"{HELLO}/license")
        event = await _aggregator(FakeGitHubClient(routes), sink).collect(_ctx(), IDENTITY)

        assert event.license.error is not None
        assert "404" in event.license.error
        assert event.license.spdx_id is None
        assert set(event.section_errors()) == {"license"}
        assert event.contributor_list.count == 2
        assert event.branch_list.count == 2
        assert event.languages.count == 2
        assert event.downloads.total_downloads == 15
        assert sink.events == [event]

    @pytest.mark.asyncio
    async def test_every_section_failing_still_emits(self, sink):
        routes = {HELLO: repository_routes()[HELLO]}
        event = await _aggregator(FakeGitHubClient(routes), sink).collect(_ctx(), IDENTITY)

        assert len(event.section_errors()) == 7
        assert event.fork_list.count == 0
        assert event.participation.all == 0
        assert event.participation.community == 0
        assert sink.events == [event]

    @pytest.mark.asyncio
    async def test_base_failure_suppresses_event(self, sink):
        client = FakeGitHubClient({})
        with pytest.raises(RepositoryUnavailableError) as exc_info:
            await _aggregator(client, sink).collect(_ctx(), IDENTITY)

        assert exc_info.value.identity == IDENTITY
        assert isinstance(exc_info.value.cause, FetchError)
        assert sink.events == []
        assert client.calls == [HELLO]


class TestDeadline:
    @pytest.mark.asyncio
    async def test_slow_section_times_out_alone(self, routes, sink):
        client = FakeGitHubClient(routes, delays={f"{HELLO}/stats/participation": 5})
        event = await _aggregator(client, sink).collect(_ctx(timeout=0.2), IDENTITY)

        assert "deadline" in event.participation.error
        assert event.participation.all == 0
        assert set(event.section_errors()) == {"participation"}
        assert event.license.spdx_id == "MIT"
        assert sink.events == [event]

    @pytest.mark.asyncio
    async def test_drop_policy_discards_interrupted_event(self, routes, sink):
        client = FakeGitHubClient(routes, delays={f"{HELLO}/releases": 5})
        aggregator = _aggregator(client, sink, partial_policy=PartialEventPolicy.DROP)
        assert await aggregator.collect(_ctx(timeout=0.2), IDENTITY) is None
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_drop_policy_keeps_ordinary_failures(self, routes, sink):
        routes[f"{HELLO}/license"] = http_error(404, f"{HELLO}/license")
        aggregator = _aggregator(
            FakeGitHubClient(routes), sink, partial_policy=PartialEventPolicy.DROP
        )
        event = await aggregator.collect(_ctx(), IDENTITY)
        assert event is not None
        assert sink.events == [event]


# ── derived fields ───────────────────────────────────────────────────────


class TestLanguageShares:
    @pytest.mark.parametrize(
        "counts",
        [
            {"Python": 1},
            {"Python": 300, "C": 100},
            {"Go": 7, "Rust": 11, "Shell": 13, "Makefile": 1},
        ],
    )
    def test_ratios_sum_to_one(self, counts):
        shares = language_shares(counts)
        assert len(shares) == len(counts)
        assert math.isclose(sum(s.ratio for s in shares), 1.0)

    def test_empty_map_yields_no_entries(self):
        assert language_shares({}) == []

    def test_zero_total_has_no_ratio(self):
        shares = language_shares({"Text": 0})
        assert shares[0].bytes == 0
        assert shares[0].ratio is None


class TestParticipation:
    def test_failure_defaults_to_zero(self):
        section = extract_participation(SubResult({}, FetchError("participation", "boom")))
        assert (section.all, section.owner, section.community) == (0, 0, 0)
        assert section.error == "participation: boom"

    @pytest.mark.parametrize(
        ("all_commits", "owner_commits"),
        [([], []), ([4, 4], [4, 4]), ([10, 0, 3], [1, 0, 0])],
    )
    def test_community_is_all_minus_owner(self, all_commits, owner_commits):
        section = extract_participation(SubResult({"all": all_commits, "owner": owner_commits}))
        assert section.community == sum(all_commits) - sum(owner_commits)


class TestDownloads:
    def test_totals(self):
        section = extract_downloads(
            SubResult(
                [
                    {"id": 7, "name": "a", "assets": [{"download_count": 1}, {"download_count": 2}]},
                    {"id": 8, "name": "b", "assets": [{"download_count": 4}]},
                ]
            )
        )
        assert section.total_downloads == 7
        assert [r.downloads for r in section.releases] == [3, 4]

    def test_release_without_assets(self):
        section = extract_downloads(SubResult([{"id": 1, "name": "draft"}]))
        assert section.total_downloads == 0
        assert section.releases[0].downloads == 0
