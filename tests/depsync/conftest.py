"""Shared fakes for depsync tests: no network, no LLM."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from depsync.agent.llm_client import LLMResponse
from depsync.config import ManagedRepos, PackageSpec, RepoSpec, Settings
from depsync.engines.committer import CommitTarget, StrategyChain
from depsync.engines.risk_assessor import RiskAssessor
from depsync.engines.staleness_scanner import FileReader
from depsync.exceptions import CommitError
from depsync.runner import SyncRunner

CARGO_TOML = """\
[package]
name = "svc"
version = "1.0.0"

[dependencies]
core-lib = "2.0.3"
serde = "1"
"""


def make_repo(
    tmp_path: Path,
    name: str,
    files: dict[str, str],
    *,
    git: bool = False,
    workflows: tuple[str, ...] = (),
) -> RepoSpec:
    """Create a fake checkout under *tmp_path* and return its RepoSpec."""
    root = tmp_path / name
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.encode("utf-8"))
    if git:
        (root / ".git").mkdir(parents=True, exist_ok=True)
    manifests = tuple(f for f in files if f not in workflows)
    return RepoSpec(
        slug=f"org/{name}",
        local_path=root,
        manifest_files=manifests,
        workflow_files=workflows,
    )


class FakeRegistry:
    def __init__(self, versions: dict[str, str | None | Exception]) -> None:
        self.versions = versions
        self.calls: list[str] = []

    async def latest_stable_version(self, name: str) -> str | None:
        self.calls.append(name)
        value = self.versions.get(name)
        if isinstance(value, Exception):
            raise value
        return value


class FakeStrategy:
    def __init__(
        self,
        name: str,
        *,
        fail_files: set[str] | None = None,
        fail_all: bool = False,
        available: bool = True,
        kind: str = "api",
    ) -> None:
        self.name = name
        self.fail_files = fail_files or set()
        self.fail_all = fail_all
        self.available = available
        self.kind = kind
        self.calls: list[tuple[str, str, str, str]] = []

    def unavailable_reason(self, target: CommitTarget) -> str | None:
        return None if self.available else f"{self.name} disabled"

    async def commit(self, target: CommitTarget, content: str, message: str) -> str:
        self.calls.append((target.repo.slug, target.file_path, content, message))
        if self.fail_all or target.file_path in self.fail_files:
            raise CommitError(self.kind, f"{self.name} refused {target.file_path}")
        return f"{self.name}-{len(self.calls)}"


class FakeLLM:
    def __init__(self, content: str = "RISK: LOW\nPatch-level bump.", *, delay: float = 0.0, error: Exception | None = None) -> None:
        self.content = content
        self.delay = delay
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs) -> LLMResponse:
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content)


class FakeNotifier:
    url = "http://king.test/admin/config-sync"

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[str | None] = []

    async def notify(self, run_id: str | None = None) -> bool:
        self.calls.append(run_id)
        return self.ok


def build_runner(
    repos: list[RepoSpec],
    versions: dict[str, str | None | Exception],
    *,
    strategies: list[FakeStrategy] | None = None,
    llm: FakeLLM | None = None,
    notifier: FakeNotifier | None = None,
    settings: Settings | None = None,
    llm_timeout: float = 5.0,
) -> SyncRunner:
    fleet = ManagedRepos(
        tracked_packages=tuple(PackageSpec(name=n) for n in versions),
        repos=tuple(repos),
    )
    return SyncRunner(
        fleet,
        registry=FakeRegistry(versions),  # type: ignore[arg-type]
        reader=FileReader(None),
        assessor=RiskAssessor(llm or FakeLLM(), timeout=llm_timeout),  # type: ignore[arg-type]
        chain=StrategyChain(strategies or [FakeStrategy("api")]),
        notifier=notifier or FakeNotifier(),  # type: ignore[arg-type]
        settings=settings or Settings(),
    )


@pytest.fixture
def cargo_repo(tmp_path):
    return make_repo(tmp_path, "svc-a", {"Cargo.toml": CARGO_TOML})
