"""Event sinks — where finished repository events are delivered.

``EventSink`` is the port the aggregator publishes to; ``JsonLinesSink``
is the default adapter, writing one JSON document per line to stdout or a
file.  Delivery guarantees beyond "one publish per finished event" belong
to the adapter.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import IO, TYPE_CHECKING, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from githubbeat.engines.stats_collector.models import RepoEvent

log = structlog.get_logger("githubbeat.sink")

STDOUT = "-"


@runtime_checkable
class EventSink(Protocol):
    """Receives finished events.

    ``publish`` is synchronous and cheap; it is called from the event loop
    thread, once per event, so calls never interleave.
    """

    def publish(self, event: RepoEvent) -> None: ...

    def close(self) -> None: ...


class JsonLinesSink:
    """Write each event as one JSON line."""

    def __init__(self, stream: IO[str], *, owns_stream: bool = False) -> None:
        self._stream = stream
        self._owns_stream = owns_stream
        self.published = 0

    @classmethod
    def open(cls, output: str = STDOUT) -> JsonLinesSink:
        """Open a sink on stdout (``"-"``) or append to the file at *output*."""
        if output == STDOUT:
            return cls(sys.stdout)
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(path.open("a", encoding="utf-8"), owns_stream=True)

    def publish(self, event: RepoEvent) -> None:
        self._stream.write(json.dumps(event.to_dict(), default=str, sort_keys=True) + "\n")
        self._stream.flush()
        self.published += 1
        log.debug("sink.published", repository=str(event.identity))

    def close(self) -> None:
        if self._owns_stream and not self._stream.closed:
            self._stream.close()
