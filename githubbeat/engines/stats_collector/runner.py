"""StatsCollectorRunner — one collection pass: resolve targets, aggregate each repository."""

from __future__ import annotations

import asyncio

import structlog

from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.aggregator import RepositoryAggregator
from githubbeat.engines.stats_collector.models import CycleReport, RepositoryIdentity
from githubbeat.engines.stats_collector.resolver import TargetResolver
from githubbeat.exceptions import CycleCancelledError, RepositoryUnavailableError

log = structlog.get_logger("githubbeat.engine")

DEFAULT_MAX_CONCURRENCY = 5


class StatsCollectorRunner:
    """Orchestration layer: resolver → bounded per-repository aggregation."""

    def __init__(
        self,
        resolver: TargetResolver,
        aggregator: RepositoryAggregator,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._resolver = resolver
        self._aggregator = aggregator
        self._max_concurrency = max_concurrency

    async def run_cycle(self, ctx: CycleContext) -> CycleReport:
        """Collect every resolved repository within *ctx*.

        Failures stay scoped to their target: they are logged and recorded
        in the report, never raised.
        """
        report = CycleReport(cycle=ctx.name)

        resolution = await self._resolver.resolve(ctx)
        report.resolved = len(resolution.identities)
        report.errors.extend(str(err) for err in resolution.errors)
        if not resolution.identities:
            return report

        sem = asyncio.Semaphore(self._max_concurrency)

        async def _run_one(identity: RepositoryIdentity) -> None:
            async with sem:
                try:
                    event = await self._aggregator.collect(ctx, identity)
                except RepositoryUnavailableError as exc:
                    level = "warning" if isinstance(exc.cause, CycleCancelledError) else "error"
                    getattr(log, level)(
                        "collector.repository_failed",
                        repository=str(identity),
                        error=str(exc.cause),
                    )
                    report.failed += 1
                    report.errors.append(str(exc))
                    return
                except Exception as exc:
                    log.exception("collector.failed", repository=str(identity))
                    report.failed += 1
                    report.errors.append(f"{identity}: {type(exc).__name__}: {exc}")
                    return
                if event is None:
                    report.dropped += 1
                else:
                    report.published += 1

        await asyncio.gather(*(_run_one(identity) for identity in resolution.identities))
        return report
