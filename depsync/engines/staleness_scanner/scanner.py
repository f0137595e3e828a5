"""Staleness scanner: find outdated version references across the fleet."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

# Ensure parsers are registered before any scan runs.
import depsync.engines.staleness_scanner.parsers  # noqa: F401
from depsync.config import RepoSpec
from depsync.core.github import GitHubClient
from depsync.engines.staleness_scanner.models import (
    ReferenceKind,
    ScanError,
    ScannedFile,
    ScanResult,
    StaleMatch,
    VersionReference,
)
from depsync.engines.staleness_scanner.registry import parser_for
from depsync.engines.staleness_scanner.versioning import is_stale
from depsync.exceptions import FileReadError, ManifestError

log = structlog.get_logger("depsync.engine.scanner")


def find_references(content: str, file_path: str, kind: ReferenceKind, packages: Iterable[str]) -> list[VersionReference]:
    """Every version reference to *packages* in *content* (no I/O)."""
    return parser_for(file_path, kind).find_references(content, list(packages))


def find_stale(
    repo: RepoSpec,
    file_path: str,
    content: str,
    kind: ReferenceKind,
    latest: dict[str, str],
) -> list[StaleMatch]:
    """Return one :class:`StaleMatch` per package with an outdated literal in *content*."""
    spans: dict[str, list[VersionReference]] = {}
    for ref in find_references(content, file_path, kind, latest):
        if is_stale(ref.version, latest[ref.package]):
            spans.setdefault(ref.package, []).append(ref)

    return [
        StaleMatch(
            repo=repo,
            file_path=file_path,
            package=package,
            old_version=refs[0].version,
            new_version=latest[package],
            spans=tuple(r.span for r in refs),
            kind=kind,
        )
        for package, refs in spans.items()
    ]


class FileReader:
    """Read files from the local checkout, or through the GitHub contents API."""

    def __init__(self, github: GitHubClient | None = None) -> None:
        self._github = github

    async def read(self, repo: RepoSpec, file_path: str) -> ScannedFile:
        if repo.local_path.is_dir():
            path = repo.local_path / file_path
            try:
                raw = await asyncio.to_thread(path.read_bytes)
            except OSError as exc:
                raise FileReadError(f"cannot read {path}: {exc.strerror or exc}") from exc
            try:
                content = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise FileReadError(f"{path} is not valid UTF-8") from exc
            return ScannedFile(repo=repo, file_path=file_path, content=content, source="local")

        if self._github is None:
            raise FileReadError(f"no local checkout at {repo.local_path} and no remote reader")
        remote = await self._github.get_file(repo.slug, file_path, ref=repo.branch)
        return ScannedFile(
            repo=repo,
            file_path=file_path,
            content=remote.content,
            source="remote",
            blob_sha=remote.sha,
        )


async def scan_repo(repo: RepoSpec, latest: dict[str, str], reader: FileReader) -> ScanResult:
    """Scan every configured file of one repository. Never raises for unreadable files."""
    result = ScanResult()
    targets: list[tuple[str, ReferenceKind]] = [(f, "manifest") for f in repo.manifest_files]
    targets += [(f, "workflow") for f in repo.workflow_files]

    for file_path, kind in targets:
        try:
            scanned = await reader.read(repo, file_path)
        except FileReadError as exc:
            log.warning("scanner.read_failed", repo=repo.slug, file=file_path, error=str(exc))
            result.errors.append(ScanError(repo=repo.slug, file_path=file_path, message=str(exc)))
            continue

        try:
            matches = find_stale(repo, file_path, scanned.content, kind, latest)
        except ManifestError as exc:
            log.warning("scanner.parse_failed", repo=repo.slug, file=file_path, error=str(exc))
            result.errors.append(ScanError(repo=repo.slug, file_path=file_path, message=str(exc)))
            continue

        for m in matches:
            log.info(
                "scanner.stale",
                repo=repo.slug,
                file=file_path,
                package=m.package,
                current=m.old_version,
                latest=m.new_version,
                occurrences=len(m.spans),
            )
        if matches:
            result.files[(repo.slug, file_path)] = scanned
            result.matches.extend(matches)
    return result


async def scan_repos(
    repos: Iterable[RepoSpec],
    latest: dict[str, str],
    reader: FileReader,
    *,
    concurrency: int = 5,
) -> ScanResult:
    """Scan all repositories concurrently and merge in configuration order."""
    if not latest:
        return ScanResult()

    sem = asyncio.Semaphore(concurrency)

    async def _scan_one(repo: RepoSpec) -> ScanResult:
        async with sem:
            try:
                return await scan_repo(repo, latest, reader)
            except Exception as exc:
                log.error("scanner.repo_failed", repo=repo.slug, error=str(exc))
                failed = ScanResult()
                failed.errors.append(ScanError(repo=repo.slug, file_path=None, message=str(exc)))
                return failed

    merged = ScanResult()
    for part in await asyncio.gather(*(_scan_one(r) for r in repos)):
        merged.matches.extend(part.matches)
        merged.files.update(part.files)
        merged.errors.extend(part.errors)
    return merged
