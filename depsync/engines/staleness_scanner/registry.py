"""Parser registry: match scanned files to the parser that understands them."""

from __future__ import annotations

import fnmatch
from collections.abc import Collection
from pathlib import PurePosixPath
from typing import Protocol, runtime_checkable

from depsync.engines.staleness_scanner.models import ReferenceKind, VersionReference

DEFAULT_MANIFEST_PARSER = "cargo-toml"
DEFAULT_WORKFLOW_PARSER = "workflow-sed"


@runtime_checkable
class ReferenceParser(Protocol):
    """Interface that every reference parser must satisfy."""

    detection_method: str
    kind: ReferenceKind
    file_patterns: list[str]

    def find_references(
        self, content: str, packages: Collection[str]
    ) -> list[VersionReference]: ...


PARSER_REGISTRY: dict[str, ReferenceParser] = {}


def register_parser(parser: ReferenceParser) -> None:
    """Register a parser instance by its detection_method."""
    PARSER_REGISTRY[parser.detection_method] = parser


def parser_for(file_path: str, kind: ReferenceKind) -> ReferenceParser:
    """Pick the parser for *file_path* by file name.

    Falls back to the default parser of *kind* when no pattern matches.
    """
    name = PurePosixPath(file_path).name
    for parser in PARSER_REGISTRY.values():
        if parser.kind != kind:
            continue
        if any(fnmatch.fnmatch(name, pattern) for pattern in parser.file_patterns):
            return parser
    default = DEFAULT_MANIFEST_PARSER if kind == "manifest" else DEFAULT_WORKFLOW_PARSER
    return PARSER_REGISTRY[default]
