"""Shared fixtures for githubbeat tests — no network required."""

from __future__ import annotations

from typing import Any

import pytest

from githubbeat.engines.stats_collector.fetcher import ResourceFetcher
from tests.githubbeat.helpers import FakeGitHubClient, RecordingSink, repository_routes


@pytest.fixture
def routes() -> dict[str, Any]:
    return repository_routes()


@pytest.fixture
def client(routes) -> FakeGitHubClient:
    return FakeGitHubClient(routes)


@pytest.fixture
def fetcher(client) -> ResourceFetcher:
    return ResourceFetcher(client)  # type: ignore[arg-type]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
