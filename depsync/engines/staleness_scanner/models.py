"""Data models for the staleness scanner engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from depsync.config import RepoSpec

ReferenceKind = Literal["manifest", "workflow"]
ContentSource = Literal["local", "remote"]


@dataclass(frozen=True)
class Span:
    """Character offsets of one version literal, plus the literal itself."""

    start: int
    end: int
    text: str


@dataclass(frozen=True)
class VersionReference:
    """A single version literal for a package found in a file."""

    package: str
    version: str
    span: Span
    kind: ReferenceKind
    line: int


@dataclass(frozen=True)
class StaleMatch:
    """An outdated reference to *package* in one file.

    At most one per (file, package): every outdated occurrence of the
    package in the file is listed in *spans*.
    """

    repo: RepoSpec
    file_path: str
    package: str
    old_version: str
    new_version: str
    spans: tuple[Span, ...]
    kind: ReferenceKind

    @property
    def key(self) -> tuple[str, str]:
        return (self.repo.slug, self.file_path)


@dataclass(frozen=True)
class ScannedFile:
    """File content exactly as scanned, so patches apply to the same text."""

    repo: RepoSpec
    file_path: str
    content: str
    source: ContentSource
    blob_sha: str | None = None


@dataclass(frozen=True)
class ScanError:
    """A repository or file that could not be scanned."""

    repo: str
    file_path: str | None
    message: str


@dataclass
class ScanResult:
    """Everything a scan found, in configuration order."""

    matches: list[StaleMatch] = field(default_factory=list)
    files: dict[tuple[str, str], ScannedFile] = field(default_factory=dict)
    errors: list[ScanError] = field(default_factory=list)
