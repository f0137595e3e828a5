"""Parser for exact pins in pip requirements files."""

from __future__ import annotations

import re
from collections.abc import Collection

from depsync.engines.staleness_scanner.models import Span, VersionReference
from depsync.engines.staleness_scanner.registry import register_parser

# name[extras] == version
_PIN_RE = re.compile(
    r"^\s*(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*(?:\[[^\]]*\])?\s*==\s*(?P<ver>\d[^\s,;#]*)"
)


def _normalize(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


class PipRequirementsParser:
    detection_method = "pip-requirements"
    kind = "manifest"
    file_patterns = ["requirements*.txt", "*.requirements.txt"]

    def find_references(
        self, content: str, packages: Collection[str]
    ) -> list[VersionReference]:
        wanted = {_normalize(p): p for p in packages}
        refs: list[VersionReference] = []
        offset = 0
        for lineno, line in enumerate(content.splitlines(keepends=True), start=1):
            m = _PIN_RE.match(line)
            if m and _normalize(m.group("name")) in wanted:
                start = offset + m.start("ver")
                version = m.group("ver")
                refs.append(
                    VersionReference(
                        package=wanted[_normalize(m.group("name"))],
                        version=version,
                        span=Span(start, start + len(version), version),
                        kind=self.kind,
                        line=lineno,
                    )
                )
            offset += len(line)
        return refs


register_parser(PipRequirementsParser())
