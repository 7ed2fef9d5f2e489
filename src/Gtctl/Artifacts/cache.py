"""Deterministic on-disk cache layout for downloaded artifacts.

Every artifact identity ``(type, name, version)`` owns a directory under the
gtctl working tree::

    <root>/artifacts/charts/<name>/<version>/pkg
    <root>/artifacts/binaries/<name>/<version>/pkg
    <root>/artifacts/binaries/<name>/<version>/bin

The working tree defaults to ``~/.gtctl``.  Acquisitions of one identity are
serialised by :meth:`ArtifactCache.lock`, which combines an in-process lock
with an advisory file lock so concurrent processes do not interleave writes.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import threading
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

from . import constants
from .errors import ArtifactIOError, ConfigError, UnknownType
from .models import ArtifactType, Source

try:  # pragma: no cover - POSIX only
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - Windows fallback
    fcntl = None  # type: ignore[assignment]

try:  # pragma: no cover - Windows only
    import msvcrt  # type: ignore
except ImportError:  # pragma: no cover - POSIX fallback
    msvcrt = None  # type: ignore[assignment]

__all__ = ["ArtifactCache", "default_working_dir"]

LOGGER = logging.getLogger("Gtctl.Artifacts.cache")

_KEY_LOCKS: Dict[Tuple[str, str, str, str], threading.Lock] = {}
_KEY_LOCKS_GUARD = threading.Lock()


def default_working_dir(home: Optional[Path] = None) -> Path:
    """Return ``<home>/.gtctl``, using the current user's home by default."""

    base = Path(home).expanduser() if home is not None else Path.home()
    return base / constants.BASE_DIR_NAME


def _validate_component(label: str, value: str) -> str:
    if not value or value in {".", ".."}:
        raise ConfigError(f"artifact {label} must be a non-empty path component, got {value!r}")
    if "/" in value or "\\" in value or "\x00" in value:
        raise ConfigError(f"artifact {label} {value!r} must not contain path separators")
    return value


def _key_lock(root: Path, kind: str, name: str, version: str) -> threading.Lock:
    key = (str(root), kind, name, version)
    with _KEY_LOCKS_GUARD:
        lock = _KEY_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _KEY_LOCKS[key] = lock
        return lock


def _acquire_file_lock(handle) -> None:
    if fcntl is not None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)  # type: ignore[attr-defined]
    elif msvcrt is not None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)  # type: ignore[attr-defined]


def _release_file_lock(handle) -> None:
    if fcntl is not None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)  # type: ignore[attr-defined]
    elif msvcrt is not None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]


class ArtifactCache:
    """Allocate cache paths for artifacts beneath a gtctl working directory."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = Path(root).expanduser() if root is not None else default_working_dir()

    @classmethod
    def from_config(cls, config) -> "ArtifactCache":
        """Build a cache rooted at ``config.home_dir/.gtctl`` or the user's home."""

        home = getattr(config, "home_dir", None)
        return cls(default_working_dir(home))

    @property
    def working_dir(self) -> Path:
        return self._root

    @property
    def artifacts_dir(self) -> Path:
        return self._root / constants.ARTIFACTS_DIR_NAME

    def set_home_dir(self, home: Path) -> None:
        """Move the working tree to ``<home>/.gtctl``."""

        self._root = default_working_dir(home)

    def _kind_dir(self, artifact_type: ArtifactType) -> str:
        if artifact_type is ArtifactType.CHART:
            return constants.CHARTS_DIR_NAME
        if artifact_type is ArtifactType.BINARY:
            return constants.BINARIES_DIR_NAME
        raise UnknownType(f"unknown artifact type {artifact_type!r}")

    def version_dir(
        self, artifact_type: Union[ArtifactType, str], name: str, version: str
    ) -> Path:
        kind = self._kind_dir(ArtifactType.parse(artifact_type))
        return (
            self.artifacts_dir
            / kind
            / _validate_component("name", name)
            / _validate_component("version", version)
        )

    def allocate(
        self,
        artifact_type: Union[ArtifactType, str],
        name: str,
        version: str,
        want_install_path: bool = False,
    ) -> Path:
        """Return the cache directory for an artifact identity.

        Args:
            artifact_type: Chart or binary.
            name: Artifact name, used as a single path component.
            version: Concrete version, used as a single path component.
            want_install_path: For binaries, return the ``bin`` directory
                where executables are installed instead of the ``pkg``
                directory holding the downloaded package.

        Returns:
            Path of the directory; it is not created.

        Raises:
            UnknownType: If ``artifact_type`` is not a chart or binary.
            ConfigError: If ``name`` or ``version`` are not plain path components.
        """

        kind = ArtifactType.parse(artifact_type)
        base = self.version_dir(kind, name, version)
        if kind is ArtifactType.BINARY and want_install_path:
            return base / constants.INSTALL_DIR_NAME
        return base / constants.PACKAGE_DIR_NAME

    def allocate_for(self, source: Source, want_install_path: bool = False) -> Path:
        return self.allocate(source.type, source.name, source.version, want_install_path)

    @contextlib.contextmanager
    def lock(
        self, artifact_type: Union[ArtifactType, str], name: str, version: str
    ) -> Iterator[None]:
        """Serialise work on one cache identity across threads and processes."""

        kind = ArtifactType.parse(artifact_type)
        directory = self.version_dir(kind, name, version)
        thread_lock = _key_lock(self._root, kind.value, name, version)
        with thread_lock:
            try:
                directory.mkdir(parents=True, exist_ok=True)
                handle = (directory / ".lock").open("a+")
            except OSError as exc:
                raise ArtifactIOError(f"cannot lock cache entry {directory}: {exc}") from exc
            try:
                _acquire_file_lock(handle)
                LOGGER.debug(
                    "cache entry locked",
                    extra={"stage": "cache", "artifact": name, "version": version},
                )
                try:
                    yield
                finally:
                    _release_file_lock(handle)
            finally:
                handle.close()

    def clean(self) -> None:
        """Remove the whole working tree, including every cached artifact."""

        if not self._root.exists():
            return
        try:
            shutil.rmtree(self._root)
        except OSError as exc:
            raise ArtifactIOError(f"failed to remove {self._root}: {exc}") from exc
        LOGGER.info("working directory removed", extra={"stage": "cache", "path": str(self._root)})
