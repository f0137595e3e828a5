"""Tests for the staleness scanner engine (parsers, staleness rule, file reading)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from depsync.config import RepoSpec
from depsync.core.github import RemoteFile
from depsync.engines.staleness_scanner import FileReader, find_references, find_stale, scan_repos
from depsync.engines.staleness_scanner.parsers.cargo_toml import CargoTomlParser
from depsync.engines.staleness_scanner.parsers.pip_requirements import PipRequirementsParser
from depsync.engines.staleness_scanner.parsers.workflow_sed import WorkflowSedParser
from depsync.engines.staleness_scanner.registry import PARSER_REGISTRY, parser_for
from depsync.engines.staleness_scanner.versioning import is_stale
from depsync.exceptions import FileReadError, ManifestError

from .conftest import CARGO_TOML, make_repo

SED_WORKFLOW = """\
      - name: Use crates.io dependencies
        run: |
          sed -i.bak 's|evo-agent-sdk = { path = "[^"]*" }|evo-agent-sdk = "0.1"|' Cargo.toml
          rm -f Cargo.toml.bak
"""


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_all_parsers_registered(self):
        assert {"cargo-toml", "pip-requirements", "workflow-sed"} <= set(PARSER_REGISTRY)

    def test_parser_by_file_name(self):
        assert parser_for("evo-agent-sdk/Cargo.toml", "manifest").detection_method == "cargo-toml"
        assert parser_for("requirements-dev.txt", "manifest").detection_method == "pip-requirements"
        assert parser_for(".github/workflows/ci.yml", "workflow").detection_method == "workflow-sed"

    def test_unknown_manifest_falls_back_to_cargo(self):
        assert parser_for("deps.toml", "manifest").detection_method == "cargo-toml"


# ── Cargo.toml ───────────────────────────────────────────────────────────


class TestCargoTomlParser:
    @pytest.fixture
    def parser(self):
        return CargoTomlParser()

    def test_simple_form(self, parser):
        refs = parser.find_references(CARGO_TOML, ["core-lib"])
        assert len(refs) == 1
        ref = refs[0]
        assert (ref.package, ref.version, ref.line) == ("core-lib", "2.0.3", 6)
        assert CARGO_TOML[ref.span.start : ref.span.end] == "2.0.3"

    def test_inline_table_form(self, parser):
        toml = '[dependencies]\nevo-agent-sdk = { version = "0.1", features = ["full"] }\n'
        refs = parser.find_references(toml, ["evo-agent-sdk"])
        assert [r.version for r in refs] == ["0.1"]
        assert toml[refs[0].span.start : refs[0].span.end] == "0.1"

    def test_block_table_form(self, parser):
        toml = '[dependencies.evo-common]\nversion = "0.2"\nfeatures = ["x"]\n\n[dev-dependencies]\n'
        refs = parser.find_references(toml, ["evo-common"])
        assert [r.version for r in refs] == ["0.2"]
        assert refs[0].line == 2

    def test_path_dependency_skipped(self, parser):
        toml = '[dependencies]\nevo-agent-sdk = { path = "../evo-agents/evo-agent-sdk", version = "0.1" }\n'
        assert parser.find_references(toml, ["evo-agent-sdk"]) == []

    def test_block_path_dependency_skipped(self, parser):
        toml = '[dependencies.evo-common]\npath = "../evo-common"\nversion = "0.2"\n'
        assert parser.find_references(toml, ["evo-common"]) == []

    def test_package_version_not_a_dependency(self, parser):
        toml = '[package]\nname = "core-lib"\nversion = "1.0.0"\n'
        assert parser.find_references(toml, ["core-lib"]) == []

    def test_renamed_dependency(self, parser):
        toml = '[dependencies]\ncore = { package = "core-lib", version = "2.0.0" }\n'
        refs = parser.find_references(toml, ["core-lib"])
        assert [(r.package, r.version) for r in refs] == [("core-lib", "2.0.0")]

    def test_operator_prefix_kept_outside_span(self, parser):
        toml = '[dependencies]\ncore-lib = "^2.0.3"\n'
        ref = parser.find_references(toml, ["core-lib"])[0]
        assert ref.version == "2.0.3"
        assert toml[ref.span.start - 1] == "^"

    def test_version_range_skipped(self, parser):
        toml = '[dependencies]\ncore-lib = ">=2, <3"\n'
        assert parser.find_references(toml, ["core-lib"]) == []

    def test_dev_build_workspace_and_target_sections(self, parser):
        toml = (
            '[dev-dependencies]\ncore-lib = "1.0"\n'
            '[build-dependencies]\ncore-lib = "1.1"\n'
            '[workspace.dependencies]\ncore-lib = "1.2"\n'
            "[target.'cfg(unix)'.dependencies]\ncore-lib = \"1.3\"\n"
        )
        refs = parser.find_references(toml, ["core-lib"])
        assert [r.version for r in refs] == ["1.0", "1.1", "1.2", "1.3"]

    def test_untracked_dependency_ignored(self, parser):
        assert parser.find_references(CARGO_TOML, ["tokio"]) == []

    def test_inline_table_spanning_lines(self, parser):
        toml = '[dependencies]\nevo-agent-sdk = { version = "0.1", features = [\n    "full",\n] }\n'
        (ref,) = parser.find_references(toml, ["evo-agent-sdk"])
        assert (ref.version, ref.line) == ("0.1", 2)
        assert toml[ref.span.start : ref.span.end] == "0.1"

    def test_dotted_key(self, parser):
        toml = '[dependencies]\nevo-common.version = "0.1"\nevo-common.features = ["x"]\n'
        (ref,) = parser.find_references(toml, ["evo-common"])
        assert ref.version == "0.1"
        assert toml[ref.span.start : ref.span.end] == "0.1"

    def test_text_inside_strings_ignored(self, parser):
        toml = (
            "[package]\n"
            'name = "svc"\n'
            'description = """\n'
            "Example manifest:\n"
            "[dependencies]\n"
            'evo-common = "0.1"\n'
            '"""\n'
        )
        assert parser.find_references(toml, ["evo-common"]) == []

    def test_literal_string_quotes(self, parser):
        toml = "[dependencies]\ncore-lib = '2.0.3'  # pinned\n"
        (ref,) = parser.find_references(toml, ["core-lib"])
        assert toml[ref.span.start : ref.span.end] == "2.0.3"

    def test_workspace_inherited_skipped(self, parser):
        toml = "[dependencies]\ncore-lib = { workspace = true }\n"
        assert parser.find_references(toml, ["core-lib"]) == []

    def test_invalid_manifest(self, parser):
        with pytest.raises(ManifestError):
            parser.find_references("[dependencies\ncore-lib = \"1\"\n", ["core-lib"])


# ── requirements.txt ─────────────────────────────────────────────────────


class TestPipRequirementsParser:
    def test_exact_pin(self):
        content = "# shared\ncore_lib==2.0.3  # pinned\nrequests>=2\n"
        refs = PipRequirementsParser().find_references(content, ["core-lib"])
        assert [(r.package, r.version, r.line) for r in refs] == [("core-lib", "2.0.3", 2)]
        assert content[refs[0].span.start : refs[0].span.end] == "2.0.3"

    def test_extras_and_unpinned(self):
        content = "core-lib[full]==1.0\ncore-lib>=1\n"
        refs = PipRequirementsParser().find_references(content, ["core-lib"])
        assert [r.version for r in refs] == ["1.0"]


# ── workflow sed ─────────────────────────────────────────────────────────


class TestWorkflowSedParser:
    def test_replacement_literal_only(self):
        refs = WorkflowSedParser().find_references(SED_WORKFLOW, ["evo-agent-sdk"])
        assert len(refs) == 1
        assert refs[0].version == "0.1"
        assert refs[0].kind == "workflow"
        assert refs[0].line == 3

    def test_no_match(self):
        assert WorkflowSedParser().find_references("steps:\n  - run: echo hello\n", ["evo-agent-sdk"]) == []


# ── staleness rule ───────────────────────────────────────────────────────


class TestIsStale:
    def test_newer_release(self):
        assert is_stale("2.0.3", "2.1.0")
        assert is_stale("0.2.1", "0.2.2")
        assert is_stale("0.2", "1.0.0")

    def test_same_or_equivalent(self):
        assert not is_stale("2.1.0", "2.1.0")
        assert not is_stale("0.2", "0.2.0")

    def test_never_downgrades(self):
        assert not is_stale("0.3.0", "0.2.0")

    def test_prerelease_behind_its_release(self):
        assert is_stale("2.1.0-rc.1", "2.1.0")


# ── find_stale ───────────────────────────────────────────────────────────


class TestFindStale:
    def test_core_lib_scenario(self, cargo_repo):
        matches = find_stale(cargo_repo, "Cargo.toml", CARGO_TOML, "manifest", {"core-lib": "2.1.0"})
        assert len(matches) == 1
        m = matches[0]
        assert (m.package, m.old_version, m.new_version) == ("core-lib", "2.0.3", "2.1.0")

    def test_up_to_date_yields_nothing(self, cargo_repo):
        assert find_stale(cargo_repo, "Cargo.toml", CARGO_TOML, "manifest", {"core-lib": "2.0.3"}) == []

    def test_one_match_per_file_and_package(self, cargo_repo):
        workflow = SED_WORKFLOW + SED_WORKFLOW.replace('"0.1"', '"0.0.9"')
        matches = find_stale(cargo_repo, "ci.yml", workflow, "workflow", {"evo-agent-sdk": "0.2.0"})
        assert len(matches) == 1
        assert len(matches[0].spans) == 2
        assert matches[0].old_version == "0.1"

    def test_references_include_current_versions(self):
        refs = find_references(CARGO_TOML, "Cargo.toml", "manifest", ["core-lib"])
        assert [r.version for r in refs] == ["2.0.3"]


# ── scan_repos / FileReader ──────────────────────────────────────────────


class TestScanRepos:
    async def test_scans_local_checkout_read_only(self, tmp_path):
        repo = make_repo(
            tmp_path,
            "svc-a",
            {"Cargo.toml": CARGO_TOML, ".github/workflows/ci.yml": SED_WORKFLOW},
            workflows=(".github/workflows/ci.yml",),
        )
        before = (repo.local_path / "Cargo.toml").read_bytes()

        result = await scan_repos([repo], {"core-lib": "2.1.0", "evo-agent-sdk": "0.2"}, FileReader())

        assert [(m.file_path, m.package) for m in result.matches] == [
            ("Cargo.toml", "core-lib"),
            (".github/workflows/ci.yml", "evo-agent-sdk"),
        ]
        assert result.files[("org/svc-a", "Cargo.toml")].source == "local"
        assert (repo.local_path / "Cargo.toml").read_bytes() == before
        assert result.errors == []

    async def test_missing_file_is_scan_error(self, tmp_path):
        checkout = make_repo(tmp_path, "svc-a", {"Cargo.toml": CARGO_TOML})
        repo = RepoSpec(
            slug=checkout.slug,
            local_path=checkout.local_path,
            manifest_files=("Cargo.toml", "sub/Cargo.toml"),
        )
        result = await scan_repos([repo], {"core-lib": "2.1.0"}, FileReader())
        assert len(result.matches) == 1
        assert [(e.repo, e.file_path) for e in result.errors] == [("org/svc-a", "sub/Cargo.toml")]

    async def test_remote_read_when_no_checkout(self, tmp_path):
        repo = RepoSpec(slug="org/svc-b", local_path=tmp_path / "absent", manifest_files=("Cargo.toml",))
        github = AsyncMock()
        github.get_file.return_value = RemoteFile(path="Cargo.toml", content=CARGO_TOML, sha="blob1")

        result = await scan_repos([repo], {"core-lib": "2.1.0"}, FileReader(github))

        github.get_file.assert_awaited_once_with("org/svc-b", "Cargo.toml", ref=None)
        scanned = result.files[("org/svc-b", "Cargo.toml")]
        assert (scanned.source, scanned.blob_sha) == ("remote", "blob1")

    async def test_unreadable_repo_does_not_stop_others(self, tmp_path):
        good = make_repo(tmp_path, "good", {"Cargo.toml": CARGO_TOML})
        bad = RepoSpec(slug="org/bad", local_path=tmp_path / "absent", manifest_files=("Cargo.toml",))
        github = AsyncMock()
        github.get_file.side_effect = FileReadError("cannot read org/bad/Cargo.toml: HTTP 404")

        result = await scan_repos([bad, good], {"core-lib": "2.1.0"}, FileReader(github))

        assert [m.repo.slug for m in result.matches] == ["org/good"]
        assert result.errors[0].repo == "org/bad"
        assert "404" in result.errors[0].message

    async def test_no_reader_for_missing_checkout(self, tmp_path):
        repo = RepoSpec(slug="org/svc", local_path=tmp_path / "absent", manifest_files=("Cargo.toml",))
        result = await scan_repos([repo], {"core-lib": "2.1.0"}, FileReader(None))
        assert result.matches == []
        assert "no local checkout" in result.errors[0].message

    async def test_nothing_resolved_scans_nothing(self, cargo_repo):
        result = await scan_repos([cargo_repo], {}, FileReader())
        assert result.matches == [] and result.errors == []

    async def test_unparsable_manifest_is_scan_error(self, tmp_path):
        repo = make_repo(
            tmp_path,
            "svc-a",
            {"Cargo.toml": "[dependencies\n", "crates/app/Cargo.toml": CARGO_TOML},
        )
        result = await scan_repos([repo], {"core-lib": "2.1.0"}, FileReader())
        assert [m.file_path for m in result.matches] == ["crates/app/Cargo.toml"]
        (err,) = result.errors
        assert err.file_path == "Cargo.toml"
        assert "invalid Cargo.toml" in err.message
