"""Version resolver engine: latest stable versions from the registry."""

from depsync.engines.version_resolver.registry_client import RegistryClient
from depsync.engines.version_resolver.resolver import ResolveResult, TrackedPackage, resolve_versions

__all__ = ["RegistryClient", "ResolveResult", "TrackedPackage", "resolve_versions"]
