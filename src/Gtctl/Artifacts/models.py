"""Core data types describing artifact requests and their resolved sources."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from .cancellation import CancellationToken
from .constants import LATEST_VERSION_TAG
from .errors import ConfigError, UnknownType

__all__ = ["ArtifactType", "Source", "DownloadOptions", "AcquiredArtifact", "is_latest"]


class ArtifactType(str, enum.Enum):
    """Kinds of artifacts the core can resolve and install."""

    CHART = "chart"
    BINARY = "binary"

    @classmethod
    def parse(cls, value: Union["ArtifactType", str]) -> "ArtifactType":
        """Coerce ``value`` into an :class:`ArtifactType`.

        Raises:
            UnknownType: If ``value`` names no supported artifact type.
        """

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise UnknownType(f"unknown artifact type {value!r}") from exc


def is_latest(version: Optional[str]) -> bool:
    """Return True for the ``latest`` sentinel or an empty version request."""

    return not version or version == LATEST_VERSION_TAG


@dataclass(frozen=True)
class Source:
    """A fully resolved, downloadable artifact.

    Attributes:
        name: Logical component name, e.g. ``greptimedb`` or ``etcd``.
        version: Concrete version; never empty and never ``latest``.
        type: Whether the artifact is a chart or a binary package.
        file_name: File name the artifact is stored under locally.
        url: ``http(s)://`` or ``oci://`` location to fetch from.
        from_region: Whether the source points at the regional mirror.
    """

    name: str
    version: str
    type: ArtifactType
    file_name: str
    url: str
    from_region: bool = False

    def __post_init__(self) -> None:
        if is_latest(self.version):
            raise ConfigError(f"source for {self.name!r} must carry a concrete version")
        if not self.file_name:
            raise ConfigError(f"source for {self.name!r} has no file name")

    @property
    def is_oci(self) -> bool:
        return self.url.startswith("oci://")

    @property
    def cache_key(self) -> Tuple[ArtifactType, str, str]:
        return (self.type, self.name, self.version)


@dataclass
class DownloadOptions:
    """Caller-controlled switches for :func:`Gtctl.Artifacts.download.fetch`."""

    enable_cache: bool = True
    binary_install_dir: Optional[Path] = None
    cancellation_token: Optional[CancellationToken] = None


@dataclass(frozen=True)
class AcquiredArtifact:
    """Outcome of a full resolve-and-fetch cycle."""

    source: Source
    path: Path

    @property
    def version(self) -> str:
        return self.source.version
