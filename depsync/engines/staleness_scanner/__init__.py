"""Staleness scanner engine: outdated version references and their patches."""

from depsync.engines.staleness_scanner.models import (
    ScanError,
    ScannedFile,
    ScanResult,
    Span,
    StaleMatch,
    VersionReference,
)
from depsync.engines.staleness_scanner.patcher import PatchResult, apply_patch, apply_patches
from depsync.engines.staleness_scanner.scanner import (
    FileReader,
    find_references,
    find_stale,
    scan_repo,
    scan_repos,
)

__all__ = [
    "FileReader",
    "PatchResult",
    "ScanError",
    "ScanResult",
    "ScannedFile",
    "Span",
    "StaleMatch",
    "VersionReference",
    "apply_patch",
    "apply_patches",
    "find_references",
    "find_stale",
    "scan_repo",
    "scan_repos",
]
