"""Commit strategy interface and outcome types."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable

from depsync.config import RepoSpec
from depsync.engines.staleness_scanner.models import StaleMatch

StrategyName = Literal["api", "local"]


@dataclass(frozen=True)
class CommitTarget:
    """Where a patched file goes.

    *blob_sha* is set when the file was scanned through the contents API,
    so the API strategy can detect a concurrent change.
    """

    repo: RepoSpec
    file_path: str
    blob_sha: str | None = None


@runtime_checkable
class CommitStrategy(Protocol):
    """One way of persisting a patched file."""

    name: StrategyName

    def unavailable_reason(self, target: CommitTarget) -> str | None:
        """``None`` when the strategy can be attempted for *target*."""
        ...

    async def commit(self, target: CommitTarget, content: str, message: str) -> str:
        """Write *content* and return the commit id; raise ``CommitError`` on failure."""
        ...


@dataclass(frozen=True)
class CommitSuccess:
    commit_id: str
    strategy: StrategyName


@dataclass(frozen=True)
class CommitFailure:
    error: str
    kind: str


@dataclass(frozen=True)
class CommitOutcome:
    """Result for one StaleMatch."""

    repo: str
    file_path: str
    package: str
    result: CommitSuccess | CommitFailure

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, CommitSuccess)


def commit_message(file_path: str, matches: Sequence[StaleMatch], run_id: str) -> str:
    """``chore(deps)`` for manifests, ``ci`` for workflow sed pins."""
    bumps = ", ".join(f"{m.package} to {m.new_version}" for m in matches)
    if matches and all(m.kind == "workflow" for m in matches):
        return f"ci: bump {bumps} in sed pattern [run_id={run_id}]"
    return f"chore(deps): bump {bumps} in {file_path} [run_id={run_id}]"
