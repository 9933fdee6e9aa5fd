"""Beat — wires client, fetcher, resolver, aggregator, runner, scheduler and sink."""

from __future__ import annotations

import asyncio
import contextlib
import signal

import httpx
import structlog

from githubbeat.core.config import BeatConfig
from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.aggregator import RepositoryAggregator
from githubbeat.engines.stats_collector.fetcher import ResourceFetcher
from githubbeat.engines.stats_collector.github_client import GitHubClient, RateLimitError
from githubbeat.engines.stats_collector.models import CycleReport
from githubbeat.engines.stats_collector.resolver import Resolution, TargetResolver
from githubbeat.engines.stats_collector.runner import StatsCollectorRunner
from githubbeat.exceptions import ConfigError
from githubbeat.scheduler import CycleScheduler
from githubbeat.sink import EventSink, JsonLinesSink

log = structlog.get_logger("githubbeat.beat")


class Beat:
    """One running collector: owns the API client and sink for its lifetime.

    Without an explicit *sink* the configured output is opened by the first
    entry point that publishes, so ``resolve`` never touches it.
    """

    def __init__(
        self,
        config: BeatConfig,
        *,
        client: GitHubClient | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.config = config
        self.client = client or GitHubClient(config.access_token, base_url=config.api_url)
        self.sink = sink
        self.fetcher = ResourceFetcher(self.client, max_pages=config.max_pages)
        self.resolver = TargetResolver(
            self.fetcher,
            repos=config.repos,
            orgs=config.orgs,
            targets=config.targets,
        )
        self.runner: StatsCollectorRunner | None = None
        self.scheduler = CycleScheduler(
            self._run_cycle,
            period=config.period,
            job_timeout=config.job_timeout,
            shutdown_grace=config.shutdown_grace,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    def open_sink(self) -> StatsCollectorRunner:
        """Open the output (once) and build the collection pipeline on it.

        Raises ConfigError when the configured output cannot be opened.
        """
        if self.runner is not None:
            return self.runner
        if self.sink is None:
            try:
                self.sink = JsonLinesSink.open(self.config.output)
            except OSError as exc:
                raise ConfigError(f"cannot open output {self.config.output}: {exc}") from exc
        aggregator = RepositoryAggregator(
            self.fetcher, self.sink, partial_policy=self.config.partial_events
        )
        self.runner = StatsCollectorRunner(
            self.resolver, aggregator, max_concurrency=self.config.max_concurrency
        )
        return self.runner

    async def _run_cycle(self, ctx: CycleContext) -> CycleReport:
        return await self.open_sink().run_cycle(ctx)

    async def start(self) -> None:
        """Announce the API mode; verify the token when one is configured."""
        if not self.config.authenticated:
            log.info("beat.unauthenticated", detail="lower API rate limits apply")
            return
        log.info("beat.authenticated")
        try:
            await self.client.verify_token()
        except (httpx.HTTPError, RateLimitError) as exc:
            raise ConfigError(f"GitHub rejected the access token: {exc}") from exc

    async def close(self) -> None:
        if self.sink is not None:
            self.sink.close()
        await self.client.close()

    def stop(self) -> None:
        self.scheduler.stop()

    # ── entry points ───────────────────────────────────────────────────────

    async def run(self) -> None:
        """Run the tick loop until :meth:`stop`."""
        log.info("beat.running", repos=len(self.config.repos), orgs=len(self.config.orgs))
        try:
            self.open_sink()
            await self.start()
            await self.scheduler.run()
        finally:
            await self.close()

    async def run_forever(self) -> None:
        """Like :meth:`run`, with SIGINT/SIGTERM wired to :meth:`stop`."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.stop)
        try:
            await self.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.remove_signal_handler(sig)

    async def run_once(self) -> CycleReport:
        """Run a single pass immediately under the configured job timeout."""
        try:
            runner = self.open_sink()
            await self.start()
            with self.scheduler.root.with_timeout(self.config.job_timeout, name="cycle-once") as ctx:
                return await runner.run_cycle(ctx)
        finally:
            await self.close()

    async def resolve(self) -> Resolution:
        """Resolve the configured targets without collecting anything."""
        try:
            await self.start()
            with self.scheduler.root.with_timeout(self.config.job_timeout, name="resolve") as ctx:
                return await self.resolver.resolve(ctx)
        finally:
            await self.close()
