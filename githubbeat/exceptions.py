"""Custom exceptions for githubbeat."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from githubbeat.engines.stats_collector.models import RepositoryIdentity


class BeatError(Exception):
    """Base exception for all githubbeat errors."""


class ConfigError(BeatError):
    """Raised when the beat configuration cannot be loaded or validated."""


class TargetFormatError(BeatError):
    """Raised when a configured target string is not a valid repository reference."""

    def __init__(self, target: str, reason: str = "expected [owner]/[name]"):
        self.target = target
        super().__init__(f"invalid repository target {target!r}: {reason}")


class FetchError(BeatError):
    """Raised (or recorded) when a GitHub resource could not be fetched."""

    def __init__(self, resource: str, message: str, *, status_code: int | None = None):
        self.resource = resource
        self.status_code = status_code
        super().__init__(f"{resource}: {message}")

    @classmethod
    def from_exception(cls, resource: str, exc: BaseException) -> FetchError:
        """Wrap a client-side exception, keeping the HTTP status when there is one."""
        response = getattr(exc, "response", None)
        status_code = getattr(response, "status_code", None)
        detail = str(exc) or type(exc).__name__
        return cls(resource, detail, status_code=status_code)


class CycleCancelledError(BeatError):
    """Raised when work is attempted on (or interrupted by) a cancelled cycle."""

    def __init__(self, message: str = "cycle context cancelled"):
        super().__init__(message)


class CycleDeadlineExceeded(CycleCancelledError):
    """Raised when a cycle's deadline elapses before the work finished."""

    def __init__(self, message: str = "cycle deadline exceeded"):
        super().__init__(message)


class RepositoryUnavailableError(BeatError):
    """Raised when the base metadata of a repository cannot be read."""

    def __init__(self, identity: RepositoryIdentity, cause: BaseException):
        self.identity = identity
        self.cause = cause
        super().__init__(f"repository {identity} unavailable: {cause}")
