"""Assemble the RunReport from every phase's outcomes."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from depsync.engines.committer.base import CommitFailure, CommitOutcome, CommitSuccess
from depsync.engines.report.models import CommittedEntry, ErrorEntry, PlannedCommit, RunReport
from depsync.engines.risk_assessor.assessor import RiskVerdict
from depsync.engines.staleness_scanner.models import ScanResult, StaleMatch
from depsync.engines.version_resolver.resolver import ResolveResult

REGISTRY_SOURCE = "<registry>"


@dataclass(frozen=True)
class FilePlan:
    """All stale matches of one file; committed as one unit."""

    repo: str
    file_path: str
    matches: tuple[StaleMatch, ...]
    message: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.repo, self.file_path)


def _outcome_error(outcome: CommitOutcome, failure: CommitFailure) -> ErrorEntry:
    stage = {"patch": "patch", "noop": "patch", "withheld": "risk_gate"}.get(failure.kind, "commit")
    return ErrorEntry(
        repo=outcome.repo,
        file=outcome.file_path,
        package=outcome.package,
        stage=stage,  # type: ignore[arg-type]
        message=failure.error,
    )


def build_report(
    *,
    run_id: str,
    dry_run: bool,
    resolved: ResolveResult,
    scan: ScanResult,
    verdict: RiskVerdict,
    outcomes: Sequence[CommitOutcome] = (),
    plans: Sequence[FilePlan] = (),
    config_synced: bool = False,
    notify_error: ErrorEntry | None = None,
) -> RunReport:
    committed: list[CommittedEntry] = []
    errors: list[ErrorEntry] = [
        ErrorEntry(repo=REGISTRY_SOURCE, package=e.package, stage="resolve", message=str(e))
        for e in resolved.errors
    ]
    errors += [
        ErrorEntry(repo=e.repo, file=e.file_path, stage="scan", message=e.message) for e in scan.errors
    ]

    for outcome in outcomes:
        if isinstance(outcome.result, CommitSuccess):
            committed.append(
                CommittedEntry(
                    repo=outcome.repo,
                    file=outcome.file_path,
                    package=outcome.package,
                    commit_id=outcome.result.commit_id,
                    strategy=outcome.result.strategy,
                )
            )
        else:
            errors.append(_outcome_error(outcome, outcome.result))

    if notify_error is not None:
        errors.append(notify_error)

    would_commit = (
        [
            PlannedCommit(
                repo=p.repo,
                file=p.file_path,
                packages=[m.package for m in p.matches],
                commit_message=p.message,
            )
            for p in plans
        ]
        if dry_run
        else []
    )

    return RunReport(
        run_id=run_id,
        dry_run=dry_run,
        versions=resolved.versions,
        pending_updates=len(scan.matches),
        committed=[] if dry_run else committed,
        errors=errors,
        config_synced=config_synced and not dry_run,
        analysis_summary=verdict.summary,
        risk_severity=verdict.severity,
        would_commit=would_commit,
    )
