"""High-level facade combining resolution, cache allocation, and download."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from .cache import ArtifactCache
from .cancellation import CancellationToken
from .download import fetch
from .models import AcquiredArtifact, ArtifactType, DownloadOptions, Source
from .resolvers import resolve
from .settings import PlatformSettings, ResolvedConfig, get_default_config

__all__ = ["ArtifactManager"]


class ArtifactManager:
    """Resolve, cache, and install GreptimeDB artifacts.

    Examples:
        >>> manager = ArtifactManager()  # doctest: +SKIP
        >>> chart = manager.acquire("greptimedb", "latest", "chart")  # doctest: +SKIP
        >>> chart.path.name  # doctest: +SKIP
        'greptimedb-0.1.1.tgz'
    """

    def __init__(
        self,
        config: Optional[ResolvedConfig] = None,
        cache: Optional[ArtifactCache] = None,
        *,
        platform: Optional[PlatformSettings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or get_default_config()
        self.cache = cache or ArtifactCache.from_config(self.config)
        self.platform = platform
        self.logger = logger or logging.getLogger("Gtctl.Artifacts")

    def new_source(
        self,
        name: str,
        version: Optional[str],
        artifact_type: Union[ArtifactType, str],
        from_region: bool = False,
        *,
        cancellation_token: Optional[CancellationToken] = None,
        nightly: bool = False,
    ) -> Source:
        return resolve(
            name,
            version,
            artifact_type,
            from_region,
            config=self.config,
            platform=self.platform,
            cancellation_token=cancellation_token,
            nightly=nightly,
            logger=self.logger,
        )

    def download_to(
        self, source: Source, dest_dir: Path, options: Optional[DownloadOptions] = None
    ) -> Path:
        return fetch(
            source,
            dest_dir,
            options,
            config=self.config,
            cache=self.cache,
            logger=self.logger,
        )

    def acquire(
        self,
        name: str,
        version: Optional[str],
        artifact_type: Union[ArtifactType, str],
        from_region: bool = False,
        *,
        enable_cache: bool = True,
        cancellation_token: Optional[CancellationToken] = None,
        nightly: bool = False,
    ) -> AcquiredArtifact:
        """Resolve an artifact and fetch it into its cache directory.

        Binaries are installed into the cache's ``bin`` directory for the
        pinned version and the returned path points at the executable.
        """

        source = self.new_source(
            name,
            version,
            artifact_type,
            from_region,
            cancellation_token=cancellation_token,
            nightly=nightly,
        )
        options = DownloadOptions(enable_cache=enable_cache, cancellation_token=cancellation_token)
        if source.type is ArtifactType.BINARY:
            options.binary_install_dir = self.cache.allocate_for(source, want_install_path=True)
        path = self.download_to(source, self.cache.allocate_for(source), options)
        return AcquiredArtifact(source=source, path=path)

    def clean(self) -> None:
        """Remove the whole working directory, cached artifacts included."""

        self.cache.clean()
