"""Tests for settings and the managed repository fleet."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from depsync.config import (
    Settings,
    default_managed_repos,
    load_managed_repos,
    parse_managed_repos,
)
from depsync.exceptions import ConfigError


@pytest.fixture
def settings(tmp_path):
    return Settings(org="acme", repos_dir=tmp_path)


class TestSettings:
    def test_defaults_from_empty_env(self, monkeypatch):
        for key in ("GITHUB_TOKEN", "DEPSYNC_ORG", "DEPSYNC_RISK_GATE", "DEPSYNC_REPOS_FILE"):
            monkeypatch.delenv(key, raising=False)
        s = Settings.from_env()
        assert s.github_token is None
        assert s.risk_gate == "advisory"
        assert s.repos_file is None
        assert s.llm_model == "gpt-4o-mini"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_x")
        monkeypatch.setenv("DEPSYNC_KING_ADDRESS", "http://king:3000")
        monkeypatch.setenv("DEPSYNC_MAX_CONCURRENCY", "0")
        monkeypatch.setenv("DEPSYNC_LLM_TIMEOUT", "2.5")
        monkeypatch.setenv("DEPSYNC_RISK_GATE", "BLOCK_ON_HIGH")
        s = Settings.from_env()
        assert s.github_token == "ghp_x"
        assert s.king_address == "http://king:3000"
        assert s.max_concurrency == 1
        assert s.llm_timeout == 2.5
        assert s.risk_gate == "block_on_high"

    def test_invalid_risk_gate(self, monkeypatch):
        monkeypatch.setenv("DEPSYNC_RISK_GATE", "strict")
        with pytest.raises(ConfigError, match="DEPSYNC_RISK_GATE"):
            Settings.from_env()

    @pytest.mark.parametrize(
        ("key", "value", "expected"),
        [
            ("DEPSYNC_MAX_CONCURRENCY", "five", "must be an integer"),
            ("DEPSYNC_NOTIFY_RETRIES", "2.5", "must be an integer"),
            ("DEPSYNC_HTTP_TIMEOUT", "30s", "must be a number"),
            ("DEPSYNC_MAX_RATE_LIMIT_WAIT", "soon", "must be a number"),
        ],
    )
    def test_malformed_number_names_variable(self, monkeypatch, key, value, expected):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigError, match=expected) as exc_info:
            Settings.from_env()
        assert key in str(exc_info.value)
        assert repr(value) in str(exc_info.value)

    def test_blank_number_uses_default(self, monkeypatch):
        monkeypatch.setenv("DEPSYNC_GIT_TIMEOUT", "")
        monkeypatch.setenv("DEPSYNC_REGISTRY_RETRIES", " ")
        monkeypatch.delenv("DEPSYNC_MAX_RATE_LIMIT_WAIT", raising=False)
        s = Settings.from_env()
        assert s.git_timeout == 120.0
        assert s.registry_retries == 3
        assert s.max_rate_limit_wait == 60.0


class TestManagedRepos:
    def test_parse(self, settings, tmp_path):
        fleet = parse_managed_repos(
            {
                "tracked_packages": ["core-lib", {"name": "evo-common", "changelog_repo": "acme/evo-common"}],
                "repos": [
                    {"repo": "svc-a", "manifest_files": ["Cargo.toml"]},
                    {
                        "repo": "other/svc-b",
                        "local": "checkouts/b",
                        "workflow_files": [".github/workflows/ci.yml"],
                        "branch": "release",
                    },
                ],
            },
            settings,
        )

        assert fleet.package_names == ["core-lib", "evo-common"]
        assert fleet.changelog_repos() == {"evo-common": "acme/evo-common"}
        a, b = fleet.repos
        assert (a.slug, a.local_path, a.manifest_files) == ("acme/svc-a", tmp_path / "svc-a", ("Cargo.toml",))
        assert (b.slug, b.local_path, b.branch) == ("other/svc-b", tmp_path / "checkouts/b", "release")
        assert b.name == "svc-b"

    def test_invalid_document(self, settings):
        with pytest.raises(ConfigError, match="invalid managed repos config"):
            parse_managed_repos({"repos": []}, settings)

    def test_load_file(self, settings, tmp_path):
        path = tmp_path / "repos.json"
        path.write_text(json.dumps({"tracked_packages": ["core-lib"], "repos": [{"repo": "svc"}]}))
        fleet = load_managed_repos(path, settings)
        assert [r.slug for r in fleet.repos] == ["acme/svc"]

    def test_load_missing_file(self, settings, tmp_path):
        with pytest.raises(ConfigError, match="cannot read"):
            load_managed_repos(tmp_path / "nope.json", settings)

    def test_load_bad_json(self, settings, tmp_path):
        path = tmp_path / "repos.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_managed_repos(path, settings)

    def test_default_fleet(self):
        fleet = default_managed_repos(Settings(repos_dir=Path("/src")))
        assert fleet.package_names == ["evo-common", "evo-agent-sdk"]
        slugs = [r.slug for r in fleet.repos]
        assert "ai-evo-agents/evo-king" in slugs
        assert "ai-evo-agents/evo-user-agent-template" in slugs
        agents = next(r for r in fleet.repos if r.name == "evo-agents")
        assert agents.manifest_files == ("evo-agent-sdk/Cargo.toml",)
        assert agents.local_path == Path("/src/evo-agents")

    def test_default_fleet_prefers_repos_file(self, tmp_path):
        path = tmp_path / "repos.json"
        path.write_text(json.dumps({"tracked_packages": ["x"], "repos": [{"repo": "y"}]}))
        fleet = default_managed_repos(Settings(repos_file=path))
        assert fleet.package_names == ["x"]
