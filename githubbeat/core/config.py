"""Beat configuration — JSON file plus environment overrides, validated by pydantic.

Environment variables (all optional):
    GITHUBBEAT_ACCESS_TOKEN — API token (falls back to GITHUB_TOKEN)
    GITHUBBEAT_PERIOD       — tick period, e.g. ``60s`` or ``5m``
    GITHUBBEAT_JOB_TIMEOUT  — per-pass deadline
    GITHUBBEAT_REPOS        — comma-separated ``owner/name`` list
    GITHUBBEAT_ORGS         — comma-separated organization list
    GITHUBBEAT_OUTPUT       — ``-`` for stdout, or a file path
"""

from __future__ import annotations

import json
import math
import os
import re
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from githubbeat.engines.stats_collector.github_client import DEFAULT_API_URL
from githubbeat.engines.stats_collector.models import PartialEventPolicy
from githubbeat.exceptions import ConfigError

log = structlog.get_logger("githubbeat.config")

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_ENV_LISTS = {"GITHUBBEAT_REPOS": "repos", "GITHUBBEAT_ORGS": "orgs"}
_ENV_SCALARS = {
    "GITHUBBEAT_PERIOD": "period",
    "GITHUBBEAT_JOB_TIMEOUT": "job_timeout",
    "GITHUBBEAT_OUTPUT": "output",
}


def parse_duration(value: Any) -> float:
    """Parse ``30``, ``"30"``, ``"30s"``, ``"1m30s"`` or ``"250ms"`` into seconds.

    Raises ValueError for anything else, including ``nan`` and ``inf``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, str):
        seconds = _parse_duration_text(value)
    else:
        seconds = float(value)
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    return seconds


def _parse_duration_text(value: str) -> float:
    text = value.strip().lower()
    try:
        return float(text)
    except ValueError:
        pass
    matches = list(_DURATION_RE.finditer(text))
    if not matches or "".join(m.group(0) for m in matches) != text:
        raise ValueError(f"invalid duration: {value!r}")
    return sum(float(m.group(1)) * _UNIT_SECONDS[m.group(2)] for m in matches)


class BeatConfig(BaseModel):
    """Runtime configuration of the beat."""

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    access_token: str | None = None
    period: float = 60.0
    job_timeout: float = 30.0
    repos: list[str] = Field(default_factory=list)
    orgs: list[str] = Field(default_factory=list)
    targets: list[str] = Field(default_factory=list)
    max_concurrency: int = Field(default=5, ge=1)
    max_pages: int = Field(default=10, ge=1)
    partial_events: PartialEventPolicy = PartialEventPolicy.EMIT
    output: str = "-"
    shutdown_grace: float = Field(default=5.0, ge=0)
    api_url: str = DEFAULT_API_URL

    @field_validator("period", "job_timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("period", "job_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("duration must be > 0")
        return value

    @field_validator("access_token")
    @classmethod
    def _blank_token_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def _warn_long_timeout(self) -> BeatConfig:
        if self.job_timeout > self.period:
            log.warning(
                "config.job_timeout_exceeds_period",
                job_timeout=self.job_timeout,
                period=self.period,
            )
        return self

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    def has_targets(self) -> bool:
        return bool(self.repos or self.orgs or self.targets)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    token = environ.get("GITHUBBEAT_ACCESS_TOKEN") or environ.get("GITHUB_TOKEN")
    if token:
        overrides["access_token"] = token
    for key, field in _ENV_SCALARS.items():
        if environ.get(key):
            overrides[field] = environ[key]
    for key, field in _ENV_LISTS.items():
        if environ.get(key):
            overrides[field] = _split_list(environ[key])
    return overrides


def load_config(
    path: str | Path | None = None,
    *,
    environ: dict[str, str] | None = None,
    **overrides: Any,
) -> BeatConfig:
    """Load a config file (JSON), apply env and keyword overrides, validate.

    Raises ConfigError on unreadable files or invalid values.
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"cannot read config file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config file {path} must contain a JSON object")

    data.update(_env_overrides(dict(os.environ) if environ is None else environ))
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return BeatConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
