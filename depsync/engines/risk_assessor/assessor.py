"""Risk assessor: one advisory changelog-risk verdict per run."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

import httpx
import structlog

from depsync.agent.llm_client import LLMClient
from depsync.config import RiskGate
from depsync.core.github import GitHubClient, RateLimitError
from depsync.engines.risk_assessor.prompts import RISK_SYSTEM_PROMPT, build_risk_prompt
from depsync.engines.staleness_scanner.models import StaleMatch

log = structlog.get_logger("depsync.engine.risk")

Severity = Literal["none", "low", "medium", "high", "unknown"]

NO_CHANGES_SUMMARY = "No dependency updates required: all repos are up to date."

_SEVERITY_RE = re.compile(r"^\s*\**\s*RISK\s*:\s*(LOW|MEDIUM|HIGH)\b", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class RiskVerdict:
    """Free-text verdict plus the severity it declares."""

    summary: str
    severity: Severity


def parse_severity(text: str) -> Severity:
    m = _SEVERITY_RE.search(text)
    return m.group(1).lower() if m else "unknown"  # type: ignore[return-value]


def gate_allows(verdict: RiskVerdict, gate: RiskGate) -> bool:
    """Whether commits may proceed under *gate*.

    ``block_on_high`` requires a positive verdict: an ``unknown`` severity
    (including a failed assessment) blocks as well.
    """
    if gate == "advisory":
        return True
    return verdict.severity not in ("high", "unknown")


def summarize_changes(matches: Sequence[StaleMatch]) -> list[tuple[str, str, str]]:
    """Distinct ``(package, old, new)`` triples in first-seen order."""
    return list(dict.fromkeys((m.package, m.old_version, m.new_version) for m in matches))


class RiskAssessor:
    """Ask the LLM about the whole candidate set; never raises."""

    def __init__(
        self,
        llm: LLMClient,
        *,
        model: str | None = None,
        timeout: float = 60.0,
        github: GitHubClient | None = None,
        changelog_repos: dict[str, str] | None = None,
    ) -> None:
        self._llm = llm
        self._model = model
        self._timeout = timeout
        self._github = github
        self._changelog_repos = changelog_repos or {}

    async def assess(self, matches: Sequence[StaleMatch]) -> RiskVerdict:
        if not matches:
            return RiskVerdict(summary=NO_CHANGES_SUMMARY, severity="none")

        changes = summarize_changes(matches)
        try:
            summary = await asyncio.wait_for(self._ask(changes), timeout=self._timeout)
        except asyncio.TimeoutError:
            log.warning("risk.timeout", timeout=self._timeout)
            return RiskVerdict(
                summary=(
                    f"Analysis unavailable (timed out after {self._timeout:g}s): "
                    "risk assessment could not be completed."
                ),
                severity="unknown",
            )
        except Exception as exc:
            log.warning("risk.failed", error=str(exc))
            return RiskVerdict(
                summary=f"Analysis unavailable (gateway error: {exc}): risk assessment could not be completed.",
                severity="unknown",
            )

        if not summary.strip():
            log.warning("risk.empty_response")
            return RiskVerdict(
                summary="Analysis unavailable (empty response): risk assessment could not be completed.",
                severity="unknown",
            )

        verdict = RiskVerdict(summary=summary, severity=parse_severity(summary))
        log.info("risk.assessed", severity=verdict.severity, changes=len(changes))
        return verdict

    async def _ask(self, changes: list[tuple[str, str, str]]) -> str:
        changelogs = await self._changelogs(changes)
        resp = await self._llm.create(
            model=self._model,
            system=RISK_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_risk_prompt(changes, changelogs)}],
            temperature=0.3,
            max_tokens=300,
        )
        return resp.content

    async def _changelogs(self, changes: list[tuple[str, str, str]]) -> dict[str, str]:
        """Best-effort release notes for the new versions; failures are skipped."""
        if self._github is None:
            return {}
        notes: dict[str, str] = {}
        for package, new in dict.fromkeys((p, n) for p, _, n in changes):
            slug = self._changelog_repos.get(package)
            if slug is None or package in notes:
                continue
            try:
                body = await self._github.get_release_notes(slug, new)
            except (httpx.HTTPError, RateLimitError) as exc:
                log.debug("risk.changelog_unavailable", package=package, repo=slug, error=str(exc))
                continue
            if body:
                notes[package] = body
        return notes
