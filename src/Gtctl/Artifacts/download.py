# === NAVMAP v1 ===
# {
#   "module": "Gtctl.Artifacts.download",
#   "purpose": "Fetch resolved sources into cache directories and install binaries",
#   "sections": [
#     {"id": "helpers", "name": "Cache checks", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "fetch", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Download engine for resolved artifact sources.

:func:`fetch` is the single entry point: given a :class:`Source` and a
destination directory it serves a cached copy when present, otherwise
transfers the artifact over HTTP(S) or from an OCI registry, and installs
binary packages into the caller's install directory.
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator, Optional

from . import net, oci
from .cache import ArtifactCache
from .errors import ArtifactIOError, MissingInstallDir
from .install import install
from .models import ArtifactType, DownloadOptions, Source
from .settings import ResolvedConfig, get_default_config

__all__ = ["fetch", "is_cached"]

LOGGER = logging.getLogger("Gtctl.Artifacts.download")


# --- Cache checks ------------------------------------------------------------------


def is_cached(path: Path) -> bool:
    """Return True when ``path`` exists.

    Raises:
        ArtifactIOError: For stat failures other than a missing file.
    """

    try:
        path.stat()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise ArtifactIOError(f"cannot stat cached artifact {path}: {exc}") from exc
    return True


@contextlib.contextmanager
def _cache_lock(cache: Optional[ArtifactCache], source: Source) -> Iterator[None]:
    if cache is None:
        yield
        return
    with cache.lock(source.type, source.name, source.version):
        yield


# --- fetch -------------------------------------------------------------------------


def fetch(
    source: Source,
    dest_dir: Path,
    options: Optional[DownloadOptions] = None,
    *,
    config: Optional[ResolvedConfig] = None,
    cache: Optional[ArtifactCache] = None,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Materialise ``source`` under ``dest_dir`` and return the usable path.

    Args:
        source: Resolved artifact to fetch.
        dest_dir: Directory receiving ``source.file_name``.
        options: Cache, install directory, and cancellation switches.
        config: Configuration; defaults to :func:`get_default_config`.
        cache: When given, the fetch runs under the cache entry's lock.
        logger: Logger for structured download events.

    Returns:
        The chart package path, or ``<binary_install_dir>/<source.name>`` for
        binaries once installed.

    Raises:
        ArtifactIOError: On local filesystem failures.
        DownloadFailed: On non-200 transfer responses.
        UpstreamUnavailable: On transport failures.
        MissingInstallDir: For binaries without ``options.binary_install_dir``.
        Cancelled: If the cancellation token fires mid-transfer.
    """

    opts = options or DownloadOptions()
    cfg = config or get_default_config()
    log = logger or LOGGER
    dest_dir = Path(dest_dir)
    local_path = dest_dir / source.file_name
    token = opts.cancellation_token

    with _cache_lock(cache, source):
        if opts.enable_cache and is_cached(local_path):
            log.info(
                "artifact already cached, skipping download",
                extra={"stage": "cache", "artifact": source.name, "path": str(local_path)},
            )
        else:
            try:
                dest_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ArtifactIOError(f"cannot create {dest_dir}: {exc}") from exc

            log.info(
                "downloading artifact",
                extra={
                    "stage": "download",
                    "artifact": source.name,
                    "version": source.version,
                    "url": source.url,
                    "dest": str(dest_dir),
                },
            )
            if source.is_oci and source.type is ArtifactType.CHART:
                result = oci.pull_chart(
                    source.url,
                    source.version,
                    dest_dir,
                    settings=cfg.http,
                    cancellation_token=token,
                    logger=log,
                )
                return result.path

            net.download_to_path(
                source.url,
                local_path,
                settings=cfg.http,
                cancellation_token=token,
                logger=log,
            )

        if source.type is ArtifactType.BINARY:
            if not opts.binary_install_dir:
                raise MissingInstallDir(
                    f"binary {source.name} {source.version} requires an install directory"
                )
            install_dir = Path(opts.binary_install_dir)
            install(
                local_path,
                install_dir,
                max_compression_ratio=cfg.extraction.max_compression_ratio,
                cancellation_token=token,
                logger=log,
            )
            return install_dir / source.name

        return local_path
