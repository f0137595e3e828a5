"""CLI entry point: depsync.

Subcommands:
    depsync run                       # full run: resolve, scan, assess, commit, notify
    depsync run --dry-run --json      # detection + assessment only, JSON report on stdout
    depsync scan                      # resolve + scan, list stale references
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys
from pathlib import Path

import click
from dotenv import find_dotenv, load_dotenv

from depsync import __version__
from depsync.config import ManagedRepos, Settings, default_managed_repos, load_managed_repos
from depsync.core.logging import setup_logging
from depsync.engines.report import RunReport
from depsync.engines.staleness_scanner import ScanResult
from depsync.exceptions import ConfigError, RunCancelledError
from depsync.runner import RunConfig, SyncRunner


def _load(repos: str | None) -> tuple[Settings, ManagedRepos]:
    settings = Settings.from_env()
    if repos is not None:
        settings = dataclasses.replace(settings, repos_file=Path(repos))
        return settings, load_managed_repos(Path(repos), settings)
    return settings, default_managed_repos(settings)


async def _run_sync(settings: Settings, fleet: ManagedRepos, config: RunConfig) -> RunReport:
    async with SyncRunner.from_settings(settings, fleet) as runner:
        return await runner.run(config)


async def _scan_only(settings: Settings, fleet: ManagedRepos) -> tuple[dict[str, str], ScanResult]:
    async with SyncRunner.from_settings(settings, fleet) as runner:
        resolved = await runner.resolve()
        return resolved.versions, await runner.scan(resolved)


def _print_report(report: RunReport) -> None:
    mode = " (dry run)" if report.dry_run else ""
    click.echo(f"Run {report.run_id}{mode}")
    click.echo("  Versions:")
    for name, version in sorted(report.versions.items()):
        click.echo(f"    {name} {version}")
    click.echo(f"  Pending updates: {report.pending_updates}")
    for c in report.committed:
        click.echo(f"  [committed] {c.repo}/{c.file} {c.package} @ {c.commit_id} ({c.strategy})")
    for p in report.would_commit:
        click.echo(f"  [would commit] {p.repo}/{p.file}: {', '.join(p.packages)}")
    for e in report.errors:
        where = f"{e.repo}/{e.file}" if e.file else e.repo
        click.echo(f"  [{e.stage} error] {where}: {e.message}")
    click.echo(f"  Config synced: {'yes' if report.config_synced else 'no'}")
    click.echo(f"  Risk ({report.risk_severity}): {report.analysis_summary}")


@click.group()
@click.version_option(__version__, "-V", "--version", prog_name="depsync")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.option("--log-format", type=click.Choice(["console", "json"]), default=None, help="Log renderer")
def main(verbose: bool, log_format: str | None) -> None:
    """depsync: propagate shared package releases across managed repos."""
    load_dotenv(find_dotenv(usecwd=True))
    setup_logging(level="DEBUG" if verbose else None, fmt=log_format)


@main.command("run")
@click.option("--dry-run", is_flag=True, help="Detect and assess only; commit nothing")
@click.option("--repos", type=click.Path(exists=True, dir_okay=False), default=None, help="Managed repos JSON file")
@click.option("--run-id", default=None, help="Run identifier (default: random)")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def run_cmd(dry_run: bool, repos: str | None, run_id: str | None, as_json: bool) -> None:
    """Run one synchronization pass and print the report."""
    try:
        settings, fleet = _load(repos)
        report = asyncio.run(_run_sync(settings, fleet, RunConfig(dry_run=dry_run, run_id=run_id)))
    except (ConfigError, RunCancelledError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if as_json:
        click.echo(report.model_dump_json(indent=2))
    else:
        _print_report(report)


@main.command("scan")
@click.option("--repos", type=click.Path(exists=True, dir_okay=False), default=None, help="Managed repos JSON file")
@click.option("--json", "as_json", is_flag=True, help="Print stale references as JSON")
def scan_cmd(repos: str | None, as_json: bool) -> None:
    """Resolve latest versions and list stale references (read-only)."""
    try:
        settings, fleet = _load(repos)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    versions, result = asyncio.run(_scan_only(settings, fleet))

    if as_json:
        payload = {
            "versions": versions,
            "stale": [
                {
                    "repo": m.repo.slug,
                    "file": m.file_path,
                    "package": m.package,
                    "current": m.old_version,
                    "latest": m.new_version,
                    "occurrences": len(m.spans),
                }
                for m in result.matches
            ],
            "errors": [
                {"repo": e.repo, "file": e.file_path, "message": e.message} for e in result.errors
            ],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not result.matches:
        click.echo("All managed repos are up to date.")
    for m in result.matches:
        click.echo(f"  {m.repo.slug}/{m.file_path}: {m.package} {m.old_version} -> {m.new_version}")
    for e in result.errors:
        click.echo(f"  [error] {e.repo}/{e.file_path or ''}: {e.message}", err=True)


if __name__ == "__main__":
    main()
