"""depsync: keep a fleet of repositories in step with shared core packages."""

__version__ = "0.1.0"
