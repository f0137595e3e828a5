"""Run configuration: environment settings and the managed repository fleet."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from depsync.exceptions import ConfigError

RiskGate = Literal["advisory", "block_on_high"]

DEFAULT_ORG = "ai-evo-agents"
DEFAULT_REGISTRY_URL = "https://crates.io/api/v1/crates"
DEFAULT_USER_AGENT = "depsync/0.1.0 (github.com/ai-evo-agents)"


def _env_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Process-wide knobs, normally read from the environment."""

    github_token: str | None = None
    org: str = DEFAULT_ORG
    king_address: str = "http://localhost:3000"
    repos_dir: Path = Path("..")
    repos_file: Path | None = None
    max_concurrency: int = 5
    registry_url: str = DEFAULT_REGISTRY_URL
    registry_user_agent: str = DEFAULT_USER_AGENT
    registry_retries: int = 3
    http_timeout: float = 30.0
    git_timeout: float = 120.0
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 60.0
    risk_gate: RiskGate = "advisory"
    notify_retries: int = 2
    max_rate_limit_wait: float = 60.0

    @classmethod
    def from_env(cls) -> Settings:
        gate = os.environ.get("DEPSYNC_RISK_GATE", "advisory").lower()
        if gate not in ("advisory", "block_on_high"):
            raise ConfigError(f"DEPSYNC_RISK_GATE must be advisory or block_on_high, got {gate!r}")
        repos_file = os.environ.get("DEPSYNC_REPOS_FILE")
        return cls(
            github_token=os.environ.get("GITHUB_TOKEN") or None,
            org=os.environ.get("DEPSYNC_ORG", DEFAULT_ORG),
            king_address=os.environ.get("DEPSYNC_KING_ADDRESS", "http://localhost:3000"),
            repos_dir=Path(os.environ.get("DEPSYNC_REPOS_DIR", "..")),
            repos_file=Path(repos_file) if repos_file else None,
            max_concurrency=max(_env_int("DEPSYNC_MAX_CONCURRENCY", 5), 1),
            registry_url=os.environ.get("DEPSYNC_REGISTRY_URL", DEFAULT_REGISTRY_URL),
            registry_user_agent=os.environ.get("DEPSYNC_REGISTRY_USER_AGENT", DEFAULT_USER_AGENT),
            registry_retries=max(_env_int("DEPSYNC_REGISTRY_RETRIES", 3), 1),
            http_timeout=_env_float("DEPSYNC_HTTP_TIMEOUT", 30.0),
            git_timeout=_env_float("DEPSYNC_GIT_TIMEOUT", 120.0),
            llm_model=os.environ.get("DEPSYNC_LLM_MODEL", "gpt-4o-mini"),
            llm_timeout=_env_float("DEPSYNC_LLM_TIMEOUT", 60.0),
            risk_gate=gate,  # type: ignore[arg-type]
            notify_retries=max(_env_int("DEPSYNC_NOTIFY_RETRIES", 2), 1),
            max_rate_limit_wait=_env_float("DEPSYNC_MAX_RATE_LIMIT_WAIT", 60.0),
        )


# ── Fleet model ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PackageSpec:
    """A tracked package and, optionally, the GitHub repo publishing its release notes."""

    name: str
    changelog_repo: str | None = None


@dataclass(frozen=True)
class RepoSpec:
    """One managed repository and the files inside it to scan."""

    slug: str  # "org/name"
    local_path: Path
    manifest_files: tuple[str, ...] = ()
    workflow_files: tuple[str, ...] = ()
    branch: str | None = None

    @property
    def name(self) -> str:
        return self.slug.rsplit("/", 1)[-1]

    def has_checkout(self) -> bool:
        return (self.local_path / ".git").exists()


@dataclass(frozen=True)
class ManagedRepos:
    """The operator-curated universe a run searches."""

    tracked_packages: tuple[PackageSpec, ...]
    repos: tuple[RepoSpec, ...]

    @property
    def package_names(self) -> list[str]:
        return [p.name for p in self.tracked_packages]

    def changelog_repos(self) -> dict[str, str]:
        return {p.name: p.changelog_repo for p in self.tracked_packages if p.changelog_repo}


# ── JSON file schema ─────────────────────────────────────────────────────


class PackageEntry(BaseModel):
    name: str = Field(min_length=1)
    changelog_repo: str | None = None


class RepoEntry(BaseModel):
    repo: str = Field(min_length=1)
    local: str | None = None
    manifest_files: list[str] = Field(default_factory=list)
    workflow_files: list[str] = Field(default_factory=list)
    branch: str | None = None


class ReposFile(BaseModel):
    """Shape of the ``DEPSYNC_REPOS_FILE`` JSON document."""

    org: str | None = None
    tracked_packages: list[PackageEntry]
    repos: list[RepoEntry]

    @field_validator("tracked_packages", mode="before")
    @classmethod
    def _names_as_entries(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": v} if isinstance(v, str) else v for v in value]
        return value


def _to_managed(data: ReposFile, settings: Settings) -> ManagedRepos:
    org = data.org or settings.org
    repos: list[RepoSpec] = []
    for entry in data.repos:
        slug = entry.repo if "/" in entry.repo else f"{org}/{entry.repo}"
        local = entry.local or slug.rsplit("/", 1)[-1]
        repos.append(
            RepoSpec(
                slug=slug,
                local_path=settings.repos_dir / local,
                manifest_files=tuple(entry.manifest_files),
                workflow_files=tuple(entry.workflow_files),
                branch=entry.branch,
            )
        )
    packages = tuple(
        PackageSpec(name=p.name, changelog_repo=p.changelog_repo) for p in data.tracked_packages
    )
    return ManagedRepos(tracked_packages=packages, repos=tuple(repos))


def parse_managed_repos(raw: dict[str, Any], settings: Settings) -> ManagedRepos:
    """Validate an already-decoded repos document."""
    try:
        data = ReposFile.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid managed repos config: {exc}") from exc
    return _to_managed(data, settings)


def load_managed_repos(path: Path, settings: Settings) -> ManagedRepos:
    """Read and validate the managed repos JSON file at *path*."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read managed repos file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"managed repos file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"managed repos file {path} must contain a JSON object")
    return parse_managed_repos(raw, settings)


_WORKFLOWS = [".github/workflows/ci.yml", ".github/workflows/release.yml"]

# The production fleet. To add a repo, append an entry here or point
# DEPSYNC_REPOS_FILE at a JSON document with the same shape.
DEFAULT_FLEET: dict[str, Any] = {
    "tracked_packages": [
        {"name": "evo-common", "changelog_repo": f"{DEFAULT_ORG}/evo-common"},
        {"name": "evo-agent-sdk", "changelog_repo": f"{DEFAULT_ORG}/evo-agents"},
    ],
    "repos": [
        {"repo": "evo-king", "manifest_files": ["Cargo.toml"]},
        {"repo": "evo-agents", "manifest_files": ["evo-agent-sdk/Cargo.toml"]},
        *[
            {"repo": name, "manifest_files": ["Cargo.toml"], "workflow_files": _WORKFLOWS}
            for name in (
                "evo-kernel-agent-learning",
                "evo-kernel-agent-building",
                "evo-kernel-agent-pre-load",
                "evo-kernel-agent-evaluation",
                "evo-kernel-agent-skill-manage",
                "evo-kernel-agent-update",
                "evo-user-agent-template",
            )
        ],
    ],
}


def default_managed_repos(settings: Settings) -> ManagedRepos:
    """Return the configured fleet: ``settings.repos_file`` if set, else the built-in one."""
    if settings.repos_file is not None:
        return load_managed_repos(settings.repos_file, settings)
    return parse_managed_repos(DEFAULT_FLEET, settings)
