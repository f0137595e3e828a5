"""Custom exceptions for depsync."""

from __future__ import annotations


class DepSyncError(Exception):
    """Base exception for all depsync errors."""


class ConfigError(DepSyncError):
    """Raised when the run configuration makes every later phase meaningless.

    Always raised before any remote side effect.
    """


class ResolutionError(DepSyncError):
    """Raised when a tracked package's latest version cannot be determined."""

    def __init__(self, package: str, reason: str) -> None:
        self.package = package
        self.reason = reason
        super().__init__(f"cannot resolve latest version of {package}: {reason}")


class FileReadError(DepSyncError):
    """Raised when a file cannot be read from a checkout or through the contents API."""


class ManifestError(DepSyncError):
    """Raised when a manifest cannot be parsed."""


class PatchError(DepSyncError):
    """Raised when recorded spans no longer hold the version that was scanned."""


class CommitError(DepSyncError):
    """Raised when a commit strategy fails.

    *kind* is a short machine-readable tag (``auth``, ``rate_limit``,
    ``not_found``, ``conflict``, ``api``, ``unavailable``, ``no_checkout``,
    ``push_rejected``, ``timeout``, ``git``, ``unexpected``).
    """

    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


class RunCancelledError(DepSyncError):
    """Raised at a phase boundary when the run was cancelled."""

    def __init__(self, phase: str) -> None:
        self.phase = phase
        super().__init__(f"run cancelled before phase {phase!r}")
