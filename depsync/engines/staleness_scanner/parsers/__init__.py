"""Reference parsers: auto-registered on import."""

from depsync.engines.staleness_scanner.parsers import (
    cargo_toml,  # noqa: F401
    pip_requirements,  # noqa: F401
    workflow_sed,  # noqa: F401
)
