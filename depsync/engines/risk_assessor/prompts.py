"""Prompts for the changelog risk assessment."""

from __future__ import annotations

RISK_SYSTEM_PROMPT = """\
You are a release engineer reviewing automated dependency bumps across a fleet \
of Rust services that share a small set of in-house crates.

# Task
Given the list of version changes (and release notes when available), give a \
brief (2-3 sentence) risk assessment.

# Output format
The first line must be exactly one of:
RISK: LOW
RISK: MEDIUM
RISK: HIGH

Then answer:
- Are any of these likely to contain breaking changes?
- Should the updates be applied immediately or held for review?
- Any specific migration notes?
"""

_MAX_CHANGELOG_CHARS = 2000


def build_risk_prompt(changes: list[tuple[str, str, str]], changelogs: dict[str, str]) -> str:
    """Render the user message for ``(package, old, new)`` triples."""
    lines = ["The following dependencies are being updated:"]
    lines += [f"- {package}: {old} → {new}" for package, old, new in changes]

    if changelogs:
        lines.append("")
        lines.append("Release notes:")
        for package, text in changelogs.items():
            body = text.strip()
            if len(body) > _MAX_CHANGELOG_CHARS:
                body = body[:_MAX_CHANGELOG_CHARS] + "\n[truncated]"
            lines.append(f"## {package}")
            lines.append(body)
    return "\n".join(lines)
