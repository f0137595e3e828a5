"""Version ordering used to decide whether a pinned literal is stale."""

from __future__ import annotations

import re

_NUMERIC_RE = re.compile(r"\d+")


def _key(version: str) -> tuple[int, int, int, int]:
    """major.minor.patch with missing parts as 0; a pre-release sorts before its release."""
    core, _, _build = version.partition("+")
    core, sep, _pre = core.partition("-")
    parts: list[int] = []
    for piece in core.split(".")[:3]:
        m = _NUMERIC_RE.match(piece)
        parts.append(int(m.group()) if m else 0)
    parts.extend([0] * (3 - len(parts)))
    return (parts[0], parts[1], parts[2], 0 if sep else 1)


def is_stale(current: str, latest: str) -> bool:
    """True when *latest* is strictly newer than *current*.

    ``"0.2"`` and ``"0.2.0"`` are equivalent; a literal already ahead of
    the registry (e.g. a local pre-release) is never rewritten.
    """
    return _key(current) < _key(latest)
