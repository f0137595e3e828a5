"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from depsync.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


def test_json_lines_on_stderr(capsys):
    setup_logging(level="debug", fmt="json")
    with structlog.contextvars.bound_contextvars(run_id="r1"):
        structlog.get_logger("depsync.test").info("resolver.fetched", package="core-lib", latest="2.1.0")

    captured = capsys.readouterr()
    assert captured.out == ""
    event = json.loads(captured.err.strip().splitlines()[-1])
    assert event["event"] == "resolver.fetched"
    assert event["run_id"] == "r1"
    assert event["package"] == "core-lib"
    assert event["level"] == "info"
    assert event["logger"] == "depsync.test"


def test_levels(monkeypatch):
    monkeypatch.setenv("DEPSYNC_LOG_LEVEL", "warning")
    setup_logging()
    assert logging.getLogger("depsync").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    setup_logging(level="chatty")
    assert logging.getLogger("depsync").level == logging.INFO
