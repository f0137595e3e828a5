"""SyncRunner: orchestrates one synchronization run across the fleet.

Phases:
1. Resolve the latest stable version of every tracked package.
2. Scan every managed repo's manifest and workflow files for stale pins.
3. Ask the LLM for one advisory changelog-risk verdict.
4. Patch and commit each stale file (skipped in dry-run mode).
5. Notify king's ``/admin/config-sync`` endpoint when anything landed.
6. Return the RunReport.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog

from depsync.agent.llm_client import LLMClient
from depsync.config import ManagedRepos, Settings, default_managed_repos
from depsync.core.github import GitHubClient
from depsync.engines.committer import (
    CommitFailure,
    CommitOutcome,
    CommitTarget,
    GitHubApiStrategy,
    LocalGitStrategy,
    StrategyChain,
    commit_message,
)
from depsync.engines.notification import HealthCheckNotifier
from depsync.engines.report import ErrorEntry, FilePlan, RunReport, build_report
from depsync.engines.risk_assessor import RiskAssessor, RiskVerdict, gate_allows
from depsync.engines.staleness_scanner import (
    FileReader,
    ScannedFile,
    ScanResult,
    StaleMatch,
    apply_patches,
    scan_repos,
)
from depsync.engines.version_resolver import RegistryClient, ResolveResult, resolve_versions
from depsync.exceptions import CommitError, ConfigError, PatchError, RunCancelledError

log = structlog.get_logger("depsync.runner")


@dataclass
class RunConfig:
    """Trigger input. ``metadata["dry_run"]`` is honoured as well as *dry_run*."""

    dry_run: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    run_id: str | None = None

    @property
    def effective_dry_run(self) -> bool:
        return self.dry_run or self.metadata.get("dry_run") is True

    @property
    def effective_run_id(self) -> str:
        return self.run_id or str(self.metadata.get("run_id") or uuid.uuid4().hex[:12])


def plan_files(matches: Sequence[StaleMatch], run_id: str) -> list[FilePlan]:
    """Group matches by (repo, file), keeping scan order."""
    grouped: dict[tuple[str, str], list[StaleMatch]] = {}
    for m in matches:
        grouped.setdefault(m.key, []).append(m)
    return [
        FilePlan(
            repo=repo,
            file_path=file_path,
            matches=tuple(group),
            message=commit_message(file_path, group, run_id),
        )
        for (repo, file_path), group in grouped.items()
    ]


def _failures(plan: FilePlan, kind: str, error: str) -> list[CommitOutcome]:
    return [
        CommitOutcome(
            repo=plan.repo,
            file_path=plan.file_path,
            package=m.package,
            result=CommitFailure(error=error, kind=kind),
        )
        for m in plan.matches
    ]


class SyncRunner:
    """Wire the engines together; collaborators are injected for testing."""

    def __init__(
        self,
        fleet: ManagedRepos,
        *,
        registry: RegistryClient,
        reader: FileReader,
        assessor: RiskAssessor,
        chain: StrategyChain,
        notifier: HealthCheckNotifier,
        settings: Settings | None = None,
    ) -> None:
        self._fleet = fleet
        self._registry = registry
        self._reader = reader
        self._assessor = assessor
        self._chain = chain
        self._notifier = notifier
        self._settings = settings or Settings()

    @classmethod
    @asynccontextmanager
    async def from_settings(
        cls,
        settings: Settings,
        fleet: ManagedRepos | None = None,
    ) -> AsyncIterator[SyncRunner]:
        """Build a runner with real clients and close them afterwards."""
        fleet = fleet if fleet is not None else default_managed_repos(settings)
        github = GitHubClient(
            settings.github_token,
            timeout=settings.http_timeout,
            max_rate_limit_wait=settings.max_rate_limit_wait,
        )
        registry = RegistryClient(
            settings.registry_url,
            user_agent=settings.registry_user_agent,
            timeout=settings.http_timeout,
            max_retries=settings.registry_retries,
        )
        try:
            yield cls(
                fleet,
                registry=registry,
                reader=FileReader(github),
                assessor=RiskAssessor(
                    LLMClient(default_model=settings.llm_model),
                    timeout=settings.llm_timeout,
                    github=github,
                    changelog_repos=fleet.changelog_repos(),
                ),
                chain=StrategyChain(
                    [GitHubApiStrategy(github), LocalGitStrategy(timeout=settings.git_timeout)]
                ),
                notifier=HealthCheckNotifier(
                    settings.king_address,
                    timeout=settings.http_timeout,
                    max_attempts=settings.notify_retries,
                ),
                settings=settings,
            )
        finally:
            await registry.close()
            await github.close()

    # ── public ───────────────────────────────────────────────────────────

    async def run(self, config: RunConfig, cancel: asyncio.Event | None = None) -> RunReport:
        """Execute one run. Raises only :class:`ConfigError` or :class:`RunCancelledError`."""
        dry_run = config.effective_dry_run
        run_id = config.effective_run_id
        self._validate(dry_run)

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            if dry_run:
                log.info("runner.dry_run", note="no files will be committed")

            log.info("runner.phase", phase="resolve", packages=self._fleet.package_names)
            resolved = await self.resolve()

            self._checkpoint(cancel, "scan")
            log.info("runner.phase", phase="scan", repos=len(self._fleet.repos))
            scan = await self.scan(resolved)

            self._checkpoint(cancel, "assess")
            log.info("runner.phase", phase="assess", pending=len(scan.matches))
            verdict = await self._assessor.assess(scan.matches)

            self._checkpoint(cancel, "commit")
            plans = plan_files(scan.matches, run_id)
            log.info("runner.phase", phase="commit", files=len(plans), dry_run=dry_run)
            outcomes = await self._apply(plans, scan, verdict, dry_run)

            config_synced = False
            notify_error: ErrorEntry | None = None
            if not dry_run and any(o.succeeded for o in outcomes):
                log.info("runner.phase", phase="notify", url=self._notifier.url)
                config_synced = await self._notifier.notify(run_id)
                if not config_synced:
                    notify_error = ErrorEntry(
                        repo=self._notifier.url,
                        stage="notify",
                        message="health-check notification was not acknowledged",
                    )

            report = build_report(
                run_id=run_id,
                dry_run=dry_run,
                resolved=resolved,
                scan=scan,
                verdict=verdict,
                outcomes=outcomes,
                plans=plans,
                config_synced=config_synced,
                notify_error=notify_error,
            )
            log.info(
                "runner.done",
                pending=report.pending_updates,
                committed=len(report.committed),
                errors=len(report.errors),
                config_synced=report.config_synced,
            )
            return report

    async def resolve(self) -> ResolveResult:
        return await resolve_versions(
            self._registry,
            self._fleet.package_names,
            concurrency=self._settings.max_concurrency,
        )

    async def scan(self, resolved: ResolveResult) -> ScanResult:
        return await scan_repos(
            self._fleet.repos,
            resolved.versions,
            self._reader,
            concurrency=self._settings.max_concurrency,
        )

    # ── internal ─────────────────────────────────────────────────────────

    def _validate(self, dry_run: bool) -> None:
        """Abort before any remote call when nothing useful can happen."""
        if not self._fleet.repos:
            raise ConfigError("no managed repositories configured")
        if not self._fleet.tracked_packages:
            raise ConfigError("no tracked packages configured")
        if dry_run:
            return
        writable = any(
            strategy.unavailable_reason(CommitTarget(repo=repo, file_path="")) is None
            for repo in self._fleet.repos
            for strategy in self._chain.strategies
        )
        if not writable:
            raise ConfigError(
                "no commit backend usable: set GITHUB_TOKEN or provide local checkouts"
            )

    @staticmethod
    def _checkpoint(cancel: asyncio.Event | None, phase: str) -> None:
        if cancel is not None and cancel.is_set():
            log.warning("runner.cancelled", before_phase=phase)
            raise RunCancelledError(phase)

    async def _apply(
        self,
        plans: list[FilePlan],
        scan: ScanResult,
        verdict: RiskVerdict,
        dry_run: bool,
    ) -> list[CommitOutcome]:
        if dry_run or not plans:
            return []

        if not gate_allows(verdict, self._settings.risk_gate):
            log.warning("runner.risk_gate_blocked", severity=verdict.severity, files=len(plans))
            outcomes: list[CommitOutcome] = []
            for plan in plans:
                outcomes += _failures(
                    plan, "withheld", f"commit withheld by risk gate (severity={verdict.severity})"
                )
            return outcomes

        sem = asyncio.Semaphore(self._settings.max_concurrency)
        # Commits into one repository are serialized; local git state is shared.
        repo_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        async def _commit_one(plan: FilePlan) -> list[CommitOutcome]:
            try:
                scanned = scan.files[plan.key]
                try:
                    patch = apply_patches(scanned.content, plan.matches)
                except PatchError as exc:
                    log.warning("runner.patch_failed", repo=plan.repo, file=plan.file_path, error=str(exc))
                    return _failures(plan, "patch", str(exc))
                if not patch.changed:
                    return _failures(plan, "noop", "patch produced no change")

                # Shielded: a cancelled run lets an in-flight commit finish.
                return await asyncio.shield(
                    self._commit_locked(plan, scanned, patch.content, sem, repo_locks[plan.repo])
                )
            except Exception as exc:
                log.error("runner.commit_crashed", repo=plan.repo, file=plan.file_path, error=str(exc))
                return _failures(plan, "unexpected", f"{type(exc).__name__}: {exc}")

        results = await asyncio.gather(*(_commit_one(p) for p in plans))
        return [outcome for group in results for outcome in group]

    async def _commit_locked(
        self,
        plan: FilePlan,
        scanned: ScannedFile,
        content: str,
        sem: asyncio.Semaphore,
        lock: asyncio.Lock,
    ) -> list[CommitOutcome]:
        target = CommitTarget(repo=scanned.repo, file_path=plan.file_path, blob_sha=scanned.blob_sha)
        # Per-repo lock first: a queued file must not hold a global slot.
        async with lock, sem:
            try:
                success = await self._chain.commit(target, content, plan.message)
            except CommitError as exc:
                log.warning("runner.commit_failed", repo=plan.repo, file=plan.file_path, error=str(exc))
                return _failures(plan, exc.kind, exc.message)
        return [
            CommitOutcome(repo=plan.repo, file_path=plan.file_path, package=m.package, result=success)
            for m in plan.matches
        ]
