"""Parser for pinned versions inside CI ``sed`` substitutions.

Release workflows swap path dependencies for registry ones before
publishing, e.g.::

    sed -i.bak 's|evo-agent-sdk = { path = "[^"]*" }|evo-agent-sdk = "0.1"|' Cargo.toml

Only the literal on the replacement side (``|name = "VERSION"|``) is a
reference; the match side is a regex, not a version.
"""

from __future__ import annotations

import re
from collections.abc import Collection

from depsync.engines.staleness_scanner.models import Span, VersionReference
from depsync.engines.staleness_scanner.registry import register_parser


def _pattern(package: str) -> re.Pattern[str]:
    return re.compile(rf'\|{re.escape(package)} = "(?P<ver>\d[^"]*)"')


class WorkflowSedParser:
    detection_method = "workflow-sed"
    kind = "workflow"
    file_patterns = ["*.yml", "*.yaml"]

    def find_references(
        self, content: str, packages: Collection[str]
    ) -> list[VersionReference]:
        refs: list[VersionReference] = []
        for package in packages:
            for m in _pattern(package).finditer(content):
                start, end = m.span("ver")
                refs.append(
                    VersionReference(
                        package=package,
                        version=m.group("ver"),
                        span=Span(start, end, m.group("ver")),
                        kind=self.kind,
                        line=content.count("\n", 0, start) + 1,
                    )
                )
        refs.sort(key=lambda r: r.span.start)
        return refs


register_parser(WorkflowSedParser())
