"""Install executables from a downloaded binary package."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import List, Optional

from .cancellation import CancellationToken, check_cancelled
from .errors import ArtifactIOError
from .extraction import extract

__all__ = ["install", "is_executable"]

LOGGER = logging.getLogger("Gtctl.Artifacts.install")

SCRATCH_PREFIX = "gtctl-"


def is_executable(path: Path) -> bool:
    """Return True for regular files with any executable permission bit."""

    try:
        mode = path.lstat().st_mode
    except OSError:
        return False
    return stat.S_ISREG(mode) and bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))


def install(
    package_file: Path,
    install_dir: Path,
    *,
    max_compression_ratio: Optional[float] = None,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Extract ``package_file`` and move every executable into ``install_dir``.

    The package is unpacked into a scratch directory that is removed whether
    or not installation succeeds.  Executables found at any depth are moved
    flat into ``install_dir``, replacing files of the same name.  A package
    without executables installs nothing and is not an error.

    Returns:
        Paths of the installed executables.
    """

    log = logger or LOGGER
    install_dir = Path(install_dir)
    try:
        install_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ArtifactIOError(f"cannot create install directory {install_dir}: {exc}") from exc

    installed: List[Path] = []
    with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX) as scratch:
        extract(
            Path(package_file),
            Path(scratch),
            max_compression_ratio=max_compression_ratio,
            logger=log,
        )
        check_cancelled(cancellation_token, f"install {package_file}")
        for root, _dirs, files in os.walk(scratch):
            for file_name in sorted(files):
                candidate = Path(root) / file_name
                if not is_executable(candidate):
                    continue
                target = install_dir / file_name
                try:
                    if target.exists() or target.is_symlink():
                        target.unlink()
                    shutil.move(str(candidate), str(target))
                except OSError as exc:
                    raise ArtifactIOError(f"failed to install {file_name} into {install_dir}: {exc}") from exc
                installed.append(target)

    if not installed:
        log.warning(
            "package contained no executables",
            extra={"stage": "install", "package": str(package_file)},
        )
    else:
        log.info(
            "installed binaries",
            extra={
                "stage": "install",
                "package": str(package_file),
                "install_dir": str(install_dir),
                "binaries": [path.name for path in installed],
            },
        )
    return installed
