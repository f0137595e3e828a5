"""Patch engine: rewrite scanned version literals in place (pure, no I/O)."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from depsync.engines.staleness_scanner.models import StaleMatch
from depsync.exceptions import PatchError


@dataclass(frozen=True)
class PatchResult:
    content: str
    changed: bool


def apply_patch(content: str, match: StaleMatch) -> PatchResult:
    """Replace every span of *match* with its new version."""
    return apply_patches(content, [match])


def apply_patches(content: str, matches: Iterable[StaleMatch]) -> PatchResult:
    """Apply several matches (different packages, same file) in one pass.

    Spans are replaced from the end of the text backwards so earlier
    offsets stay valid. Each span must still hold the literal that was
    scanned; otherwise :class:`PatchError` is raised and nothing is applied.
    """
    edits = sorted(
        ((span.start, span.end, span.text, m.new_version, m.package) for m in matches for span in m.spans),
        key=lambda e: e[0],
        reverse=True,
    )

    boundary = len(content)
    for start, end, text, _new, package in edits:
        if end > boundary:
            raise PatchError(f"overlapping spans for {package} at offset {start}")
        if content[start:end] != text:
            raise PatchError(
                f"expected {text!r} for {package} at offset {start}, "
                f"found {content[start:end]!r}; file changed since scan"
            )
        boundary = start

    patched = content
    for start, end, _text, new, _package in edits:
        patched = patched[:start] + new + patched[end:]
    return PatchResult(content=patched, changed=patched != content)
