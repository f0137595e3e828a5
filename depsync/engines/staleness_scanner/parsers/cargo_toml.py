"""Parser for dependency declarations in Rust Cargo.toml files.

The manifest is parsed with tomlkit, so every form TOML allows (inline
tables spanning several lines, dotted keys, ``[dependencies.x]`` blocks)
is read as Cargo reads it, and text inside other strings is never taken
for a dependency. tomlkit renders an unmodified document byte for byte,
so a version literal's offsets are found by swapping the parsed item for
a marker and locating the marker in the re-rendered text.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Iterator, Mapping
from typing import Any

import structlog
import tomlkit
from tomlkit.exceptions import TOMLKitError

from depsync.engines.staleness_scanner.models import Span, VersionReference
from depsync.engines.staleness_scanner.registry import register_parser
from depsync.exceptions import ManifestError

log = structlog.get_logger("depsync.engine.scanner")

_DEP_KINDS = ("dependencies", "dev-dependencies", "build-dependencies")

# Optional requirement operator, then the literal we rewrite.
_VERSION_RE = re.compile(r"^(?:[\^~=]\s*)?(?P<num>\d[0-9A-Za-z.+-]*)$")

_MARKER = "__depsync_version_marker__"

TablePath = tuple[str, ...]


def _dependency_tables(doc: Mapping[str, Any]) -> Iterator[tuple[TablePath, Mapping[str, Any]]]:
    """Yield every dependency table: top level, ``workspace`` and ``target.<cfg>``."""
    for kind in _DEP_KINDS:
        table = doc.get(kind)
        if isinstance(table, Mapping):
            yield (kind,), table

    workspace = doc.get("workspace")
    if isinstance(workspace, Mapping) and isinstance(workspace.get("dependencies"), Mapping):
        yield ("workspace", "dependencies"), workspace["dependencies"]

    targets = doc.get("target")
    if isinstance(targets, Mapping):
        for cfg, target in targets.items():
            if not isinstance(target, Mapping):
                continue
            for kind in _DEP_KINDS:
                table = target.get(kind)
                if isinstance(table, Mapping):
                    yield ("target", str(cfg), kind), table


def _version_field(alias: str, entry: Any) -> tuple[str, str | None, str] | None:
    """Return (package name, key holding the version, literal) for a dependency entry.

    The key is ``None`` for the simple ``dep = "1.2"`` form. Path and
    workspace-inherited dependencies have no registry version to bump.
    """
    if isinstance(entry, str):
        return alias, None, str(entry)
    if not isinstance(entry, Mapping) or "path" in entry:
        return None
    version = entry.get("version")
    if not isinstance(version, str):
        return None
    package = entry.get("package")
    return (str(package) if isinstance(package, str) else alias), "version", str(version)


def _locate(content: str, path: TablePath, alias: str, key: str | None, literal: str) -> int | None:
    """Offset of *literal* in *content* for the item at ``path/alias[/key]``.

    Returns ``None`` when the rendered text does not line up with the
    source, e.g. for a literal written with escape sequences.
    """
    doc = tomlkit.parse(content)
    table: Any = doc
    for part in path:
        table = table[part]
    if key is None:
        table[alias] = _MARKER
    else:
        table[alias][key] = _MARKER

    rendered = tomlkit.dumps(doc)
    at = rendered.find(_MARKER)
    if at <= 0 or rendered.count(_MARKER) != 1:
        return None
    end = at + len(literal)
    # The quote characters around the literal may be re-rendered differently.
    if (
        content[at:end] != literal
        or content[: at - 1] != rendered[: at - 1]
        or content[end + 1 :] != rendered[at + len(_MARKER) + 1 :]
    ):
        return None
    return at


class CargoTomlParser:
    detection_method = "cargo-toml"
    kind = "manifest"
    file_patterns = ["Cargo.toml"]

    def find_references(
        self, content: str, packages: Collection[str]
    ) -> list[VersionReference]:
        try:
            doc = tomlkit.parse(content)
        except TOMLKitError as exc:
            raise ManifestError(f"invalid Cargo.toml: {exc}") from exc

        wanted = set(packages)
        refs: list[VersionReference] = []
        for path, table in _dependency_tables(doc):
            for alias, entry in table.items():
                field = _version_field(str(alias), entry)
                if field is None:
                    continue
                name, key, literal = field
                if name not in wanted:
                    continue
                m = _VERSION_RE.match(literal)
                if not m:
                    # Ranges such as ">=2, <3" are left to the operator.
                    continue
                at = _locate(content, path, str(alias), key, literal)
                if at is None:
                    log.warning("scanner.literal_not_located", package=name, table=".".join(path))
                    continue
                start = at + m.start("num")
                version = m.group("num")
                refs.append(
                    VersionReference(
                        package=name,
                        version=version,
                        span=Span(start, start + len(version), version),
                        kind=self.kind,
                        line=content.count("\n", 0, start) + 1,
                    )
                )

        refs.sort(key=lambda r: r.span.start)
        return refs


register_parser(CargoTomlParser())
