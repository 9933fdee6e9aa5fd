"""GitHub naming utilities."""

from __future__ import annotations

from githubbeat.exceptions import TargetFormatError

REPO_SEPARATOR = "/"


def split_repository(target: str) -> tuple[str, str]:
    """Split an ``owner/name`` reference into ``(owner, name)``.

    Raises TargetFormatError unless the text splits into exactly two
    non-empty segments.
    """
    parts = target.strip().split(REPO_SEPARATOR)
    if len(parts) != 2:
        raise TargetFormatError(target, f"expected [owner]/[name], got {len(parts)} segment(s)")
    owner, name = (part.strip() for part in parts)
    if not owner or not name:
        raise TargetFormatError(target, "owner and name must be non-empty")
    return owner, name


def check_organization(target: str) -> str:
    """Return the normalised organization name, or raise TargetFormatError."""
    org = target.strip()
    if not org:
        raise TargetFormatError(target, "organization name must be non-empty")
    if REPO_SEPARATOR in org:
        raise TargetFormatError(target, "organization name must not contain '/'")
    return org
