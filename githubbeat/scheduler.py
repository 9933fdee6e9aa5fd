"""Scheduler — fires one collection pass per tick, each under its own deadline."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from githubbeat.core.context import CycleContext
from githubbeat.engines.stats_collector.models import CycleReport

logger = structlog.get_logger("githubbeat.scheduler")

PassFn = Callable[[CycleContext], Awaitable[CycleReport]]


class CycleScheduler:
    """Fixed-period tick loop.

    Every tick derives a fresh context from the root with the per-pass
    timeout and launches the pass as its own task, so a slow pass never
    delays the next tick.  Ticks missed while the loop was stalled are
    skipped, not replayed.  :meth:`stop` cancels the root context; passes
    still in flight observe it and wind down.
    """

    def __init__(
        self,
        run_fn: PassFn,
        *,
        period: float,
        job_timeout: float,
        shutdown_grace: float = 5.0,
        root: CycleContext | None = None,
    ) -> None:
        if period <= 0 or job_timeout <= 0:
            raise ValueError("period and job_timeout must be > 0")
        self.run_fn = run_fn
        self.period = period
        self.job_timeout = job_timeout
        self.shutdown_grace = shutdown_grace
        self.root = root or CycleContext.background()
        self._stop = asyncio.Event()
        self._passes: set[asyncio.Task[None]] = set()
        self._cycles = 0

    @property
    def cycles(self) -> int:
        """Number of passes launched so far."""
        return self._cycles

    def stop(self) -> None:
        """Signal the loop to shut down; safe to call more than once."""
        self._stop.set()

    async def run(self) -> None:
        """Tick until :meth:`stop` is called."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.period
        logger.info("scheduler.started", period=self.period, job_timeout=self.job_timeout)
        try:
            while True:
                try:
                    await asyncio.wait_for(
                        self._stop.wait(), timeout=max(next_tick - loop.time(), 0)
                    )
                    break
                except asyncio.TimeoutError:
                    pass

                self.launch()

                next_tick += self.period
                now = loop.time()
                if next_tick <= now:
                    skipped = int((now - next_tick) // self.period) + 1
                    next_tick += skipped * self.period
                    logger.warning("scheduler.ticks_skipped", skipped=skipped)
        finally:
            await self._shutdown()

    def launch(self) -> asyncio.Task[None]:
        """Start one pass now under a fresh per-pass context."""
        self._cycles += 1
        ctx = self.root.with_timeout(self.job_timeout, name=f"cycle-{self._cycles}")
        task = asyncio.create_task(self._run_pass(ctx), name=f"githubbeat-{ctx.name}")
        self._passes.add(task)
        task.add_done_callback(self._passes.discard)
        return task

    async def _run_pass(self, ctx: CycleContext) -> None:
        logger.info("cycle.started", cycle=ctx.name)
        started = time.monotonic()
        try:
            with ctx:
                report = await self.run_fn(ctx)
        except Exception:
            logger.exception("cycle.error", cycle=ctx.name)
            return
        logger.info(
            "cycle.completed",
            cycle=ctx.name,
            resolved=report.resolved,
            published=report.published,
            dropped=report.dropped,
            failed=report.failed,
            errors=len(report.errors),
            duration=round(time.monotonic() - started, 3),
        )

    async def _shutdown(self) -> None:
        self.root.cancel()
        pending = set(self._passes)
        if pending:
            _, pending = await asyncio.wait(pending, timeout=self.shutdown_grace)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._passes.clear()
        logger.info("scheduler.stopped", cycles=self._cycles)
