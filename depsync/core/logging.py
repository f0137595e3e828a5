"""Structured logging: structlog events rendered through stdlib logging on stderr."""

from __future__ import annotations

import logging
import logging.config
import os
import sys

import structlog

# Third-party loggers that only matter when something is wrong.
_QUIET_LOGGERS = ("httpx", "httpcore", "LiteLLM", "LiteLLM Router", "LiteLLM Proxy")


def _processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _level(name: str) -> str:
    name = name.upper()
    return name if isinstance(logging.getLevelName(name), int) else "INFO"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog and stdlib logging for the CLI.

    Explicit arguments win over the environment:
        DEPSYNC_LOG_LEVEL: depsync log level (default: INFO, unknown names fall back to it)
        DEPSYNC_LOG_FORMAT: console | json (default: console)

    Everything is written to stderr; stdout carries `depsync run --json` output.
    """
    log_level = _level(level or os.environ.get("DEPSYNC_LOG_LEVEL", "INFO"))
    log_format = (fmt or os.environ.get("DEPSYNC_LOG_FORMAT", "console")).lower()
    shared = _processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {"depsync": {"level": log_level}}
    loggers.update({name: {"level": "WARNING"} for name in _QUIET_LOGGERS})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stderr"], "level": "WARNING"},
            "loggers": loggers,
        }
    )
