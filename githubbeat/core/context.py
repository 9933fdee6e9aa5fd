"""Cycle context — cancellable, deadline-bound scope for the work of one pass.

A root context lives for the whole run of the beat.  Every scheduler tick
derives a child with :meth:`CycleContext.with_timeout`; all fetches of that
pass go through :meth:`CycleContext.run`, which races the fetch against the
deadline and the cancel signal.  Cancelling a context cancels all of its
descendants.  Cancellation is cooperative: a fetch that loses the race is
cancelled and awaited, never left running behind the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable
from typing import TypeVar

from githubbeat.exceptions import CycleCancelledError, CycleDeadlineExceeded

T = TypeVar("T")


class CycleContext:
    """Cancellation + deadline scope shared by every task of one cycle."""

    def __init__(
        self,
        name: str = "root",
        *,
        deadline: float | None = None,
        parent: CycleContext | None = None,
    ) -> None:
        self.name = name
        self._deadline = deadline
        self._parent = parent
        self._children: set[CycleContext] = set()
        self._error: CycleCancelledError | None = None
        self._cancelled = asyncio.Event()
        if parent is not None:
            if parent.error is not None:
                self._cancel(type(parent.error)(str(parent.error)))
            else:
                parent._children.add(self)

    @classmethod
    def background(cls) -> CycleContext:
        """Return a fresh root context without a deadline."""
        return cls("root")

    def with_timeout(self, timeout: float, *, name: str | None = None) -> CycleContext:
        """Derive a child context that expires *timeout* seconds from now.

        The child never outlives its parent's own deadline.
        """
        deadline = time.monotonic() + timeout
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return CycleContext(name or f"{self.name}/child", deadline=deadline, parent=self)

    # ── state ──────────────────────────────────────────────────────────────

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` when there is none."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    @property
    def error(self) -> CycleCancelledError | None:
        """Why the context is done, or ``None`` while it is still live."""
        if (
            self._error is None
            and self._deadline is not None
            and time.monotonic() >= self._deadline
        ):
            self._cancel(CycleDeadlineExceeded(f"{self.name}: deadline exceeded"))
        return self._error

    def done(self) -> bool:
        return self.error is not None

    def raise_if_done(self) -> None:
        """Raise a fresh copy of the context error if the context is done."""
        err = self.error
        if err is not None:
            raise type(err)(str(err))

    # ── lifecycle ──────────────────────────────────────────────────────────

    def cancel(self, error: CycleCancelledError | None = None) -> None:
        """Cancel this context and every context derived from it."""
        self._cancel(error or CycleCancelledError(f"{self.name}: cancelled"))

    def close(self) -> None:
        """Release the context once its work has completed."""
        self._cancel(CycleCancelledError(f"{self.name}: closed"))

    def _cancel(self, error: CycleCancelledError) -> None:
        if self._error is not None:
            return
        self._error = error
        self._cancelled.set()
        for child in list(self._children):
            child._cancel(type(error)(str(error)))
        self._children.clear()
        if self._parent is not None:
            self._parent._children.discard(self)

    def __enter__(self) -> CycleContext:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── execution ──────────────────────────────────────────────────────────

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the context finishes first.

        Raises :class:`CycleCancelledError` (or :class:`CycleDeadlineExceeded`)
        when the context is already done, or becomes done while waiting.  In
        the latter case the underlying task is cancelled and awaited before
        the error is raised.
        """
        err = self.error
        if err is not None:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise type(err)(str(err))

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if self._error is None:
            # asyncio.wait may wake a hair before the monotonic deadline.
            self._cancel(CycleDeadlineExceeded(f"{self.name}: deadline exceeded"))
        err = self._error
        raise type(err)(str(err))

    def __repr__(self) -> str:
        state = "live" if self._error is None else type(self._error).__name__
        return f"<CycleContext {self.name} {state}>"
