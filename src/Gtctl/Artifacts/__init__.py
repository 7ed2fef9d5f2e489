"""Public API for resolving, caching, and installing GreptimeDB artifacts.

The facade lazily exposes the resolver, download engine, cache allocator and
error types so that importing the package does not build HTTP clients or read
configuration until a caller needs them.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict

__version__ = "0.1.0"

_EXPORTS: Dict[str, str] = {
    "AcquiredArtifact": ".models",
    "ArtifactType": ".models",
    "DownloadOptions": ".models",
    "Source": ".models",
    "ArtifactCache": ".cache",
    "ArtifactManager": ".manager",
    "CancellationToken": ".cancellation",
    "ResolvedConfig": ".settings",
    "get_default_config": ".settings",
    "resolve": ".resolvers",
    "register_resolver": ".resolvers",
    "fetch": ".download",
    "install": ".install",
    "extract": ".extraction",
    "compare": ".versioning",
    "setup_logging": ".logging_config",
    "ArtifactError": ".errors",
    "ArtifactIOError": ".errors",
    "Cancelled": ".errors",
    "ConfigError": ".errors",
    "DownloadFailed": ".errors",
    "InvalidIndex": ".errors",
    "MissingInstallDir": ".errors",
    "NotFound": ".errors",
    "ParseError": ".errors",
    "UnknownType": ".errors",
    "UnsupportedFormat": ".errors",
    "UnsupportedPlatform": ".errors",
    "UpstreamUnavailable": ".errors",
}

__all__ = [*_EXPORTS, "__version__"]


def __getattr__(name: str) -> Any:
    """Lazily import exports on first attribute access."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(module_name, __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
