"""RunReport schema: the single externally observable result of a run."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ErrorStage = Literal["resolve", "scan", "patch", "commit", "risk_gate", "notify"]


class CommittedEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: str
    file: str
    package: str
    commit_id: str
    strategy: Literal["api", "local"]


class ErrorEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: str
    file: str | None = None
    package: str | None = None
    stage: ErrorStage
    message: str


class PlannedCommit(BaseModel):
    """What a dry run would have committed."""

    model_config = ConfigDict(frozen=True)

    repo: str
    file: str
    packages: list[str]
    commit_message: str


class RunReport(BaseModel):
    """Built once per run; every list is present even when empty."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    dry_run: bool
    versions: dict[str, str] = Field(default_factory=dict)
    pending_updates: int = 0
    committed: list[CommittedEntry] = Field(default_factory=list)
    errors: list[ErrorEntry] = Field(default_factory=list)
    config_synced: bool = False
    analysis_summary: str
    risk_severity: str = "none"
    would_commit: list[PlannedCommit] = Field(default_factory=list)
