"""CLI entry point: githubbeat.

Subcommands:
    githubbeat run -c beat.json        # Tick forever, publish events to the sink
    githubbeat once -c beat.json       # One pass now, then exit
    githubbeat resolve -c beat.json    # Print the repositories a pass would collect
"""

from __future__ import annotations

import asyncio
import sys

import click

from githubbeat.beat import Beat
from githubbeat.core.config import BeatConfig, load_config
from githubbeat.core.logging import setup_logging
from githubbeat.exceptions import BeatError


def _load(
    config_path: str | None,
    repos: tuple[str, ...],
    orgs: tuple[str, ...],
    output: str | None,
) -> BeatConfig:
    overrides: dict[str, object] = {"output": output}
    if repos:
        overrides["repos"] = list(repos)
    if orgs:
        overrides["orgs"] = list(orgs)
    try:
        config = load_config(config_path, **overrides)
    except BeatError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not config.has_targets():
        click.echo("Error: no repositories or organizations configured", err=True)
        sys.exit(1)
    return config


def _target_options(fn):
    fn = click.option("-o", "--output", default=None, help="Event output: '-' or a file path")(fn)
    fn = click.option("--org", "orgs", multiple=True, help="Organization to collect (repeatable)")(fn)
    fn = click.option("--repo", "repos", multiple=True, help="owner/name to collect (repeatable)")(fn)
    fn = click.option(
        "-c", "--config", "config_path", type=click.Path(exists=True), default=None,
        help="JSON config file",
    )(fn)
    return fn


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """githubbeat: periodic GitHub repository statistics collector."""
    setup_logging("DEBUG" if verbose else None)


@main.command("run")
@_target_options
def run(config_path: str | None, repos: tuple[str, ...], orgs: tuple[str, ...], output: str | None) -> None:
    """Collect on every tick until interrupted (Ctrl-C)."""
    config = _load(config_path, repos, orgs, output)
    beat = Beat(config)
    try:
        asyncio.run(beat.run_forever())
    except BeatError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command("once")
@_target_options
def once(config_path: str | None, repos: tuple[str, ...], orgs: tuple[str, ...], output: str | None) -> None:
    """Run a single collection pass and print a summary."""
    config = _load(config_path, repos, orgs, output)
    beat = Beat(config)
    try:
        report = asyncio.run(beat.run_once())
    except BeatError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(
        f"Resolved: {report.resolved}  Published: {report.published}  "
        f"Dropped: {report.dropped}  Failed: {report.failed}",
        err=True,
    )
    for error in report.errors:
        click.echo(f"  [!] {error}", err=True)


@main.command("resolve")
@_target_options
def resolve(config_path: str | None, repos: tuple[str, ...], orgs: tuple[str, ...], output: str | None) -> None:
    """List the repositories the configured targets expand to."""
    config = _load(config_path, repos, orgs, output)
    beat = Beat(config)
    try:
        resolution = asyncio.run(beat.resolve())
    except BeatError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for identity in resolution.identities:
        click.echo(str(identity))
    for error in resolution.errors:
        click.echo(f"  [!] {error}", err=True)


if __name__ == "__main__":
    main()
