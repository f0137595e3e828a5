"""Resolve the latest stable version of every tracked package."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from depsync.engines.version_resolver.registry_client import RegistryClient
from depsync.exceptions import ResolutionError

log = structlog.get_logger("depsync.engine.resolver")


@dataclass(frozen=True)
class TrackedPackage:
    """A tracked package and the latest stable version observed this run."""

    name: str
    latest_version: str


@dataclass
class ResolveResult:
    """Per-run resolution outcome; failed packages are absent from *packages*."""

    packages: dict[str, TrackedPackage] = field(default_factory=dict)
    errors: list[ResolutionError] = field(default_factory=list)

    @property
    def versions(self) -> dict[str, str]:
        return {name: pkg.latest_version for name, pkg in self.packages.items()}


async def resolve_versions(
    client: RegistryClient,
    names: list[str],
    *,
    concurrency: int = 5,
) -> ResolveResult:
    """Look up every package concurrently. One failure never aborts the others."""
    sem = asyncio.Semaphore(concurrency)

    async def _resolve_one(name: str) -> TrackedPackage | ResolutionError:
        async with sem:
            try:
                latest = await client.latest_stable_version(name)
            except ResolutionError as exc:
                log.warning("resolver.failed", package=name, error=exc.reason)
                return exc
        if latest is None:
            log.warning("resolver.not_found", package=name)
            return ResolutionError(name, "no stable version published")
        log.info("resolver.fetched", package=name, latest=latest)
        return TrackedPackage(name=name, latest_version=latest)

    outcomes = await asyncio.gather(*(_resolve_one(n) for n in dict.fromkeys(names)))

    result = ResolveResult()
    for outcome in outcomes:
        if isinstance(outcome, TrackedPackage):
            result.packages[outcome.name] = outcome
        else:
            result.errors.append(outcome)
    return result
