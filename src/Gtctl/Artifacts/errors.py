"""Exception hierarchy shared across artifact resolution, download, and install.

Acquiring an artifact spans version discovery against remote indexes, HTTP and
OCI transfers, on-disk cache management, and archive extraction.  This module
groups those failure modes so callers can react to broad categories (an
unreachable upstream vs. an unsupported host platform) while still being able
to inspect specialised subclasses such as :class:`DownloadFailed`.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ArtifactError",
    "ConfigError",
    "ParseError",
    "UpstreamUnavailable",
    "DownloadFailed",
    "NotFound",
    "InvalidIndex",
    "UnsupportedPlatform",
    "UnsupportedFormat",
    "MissingInstallDir",
    "UnknownType",
    "ArtifactIOError",
    "Cancelled",
]


class ArtifactError(RuntimeError):
    """Base exception for artifact resolution, download, or install failures."""


class ConfigError(ArtifactError):
    """Raised when configuration values or request parameters are invalid."""


class ParseError(ArtifactError, ValueError):
    """Raised when a version string is not a valid semantic version."""

    def __init__(self, message: str, *, value: Optional[str] = None) -> None:
        super().__init__(message)
        self.value = value


class UpstreamUnavailable(ArtifactError):
    """Raised when a remote index, pointer file, or release API cannot be used."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.retryable = retryable


class DownloadFailed(UpstreamUnavailable):
    """Raised when an artifact transfer returns a non-success status."""


class NotFound(ArtifactError):
    """Raised when a requested chart or layer is absent from its index."""


class InvalidIndex(ArtifactError):
    """Raised when a chart repository index is empty or malformed."""


class UnsupportedPlatform(ArtifactError):
    """Raised when no package exists for the host operating system."""


class UnsupportedFormat(ArtifactError):
    """Raised when an archive has an unknown extension or suspicious contents."""


class MissingInstallDir(ArtifactError):
    """Raised when a binary download is requested without an install directory."""


class UnknownType(ArtifactError):
    """Raised when an artifact type is neither a chart nor a binary."""


class ArtifactIOError(ArtifactError):
    """Raised when local filesystem operations on the cache fail."""


class Cancelled(ArtifactError):
    """Raised when the caller's cancellation token fires or its deadline passes."""
