# === NAVMAP v1 ===
# {
#   "module": "Gtctl.Artifacts.resolvers",
#   "purpose": "Turn (name, version, type, region) requests into downloadable sources",
#   "sections": [
#     {"id": "base", "name": "BaseResolver", "anchor": "BASE", "kind": "class"},
#     {"id": "charts", "name": "Chart resolvers", "anchor": "CHART", "kind": "class"},
#     {"id": "binaries", "name": "Binary resolvers", "anchor": "BIN", "kind": "class"},
#     {"id": "registry", "name": "Resolver registry", "anchor": "REG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Resolver implementations for GreptimeDB charts and binaries.

Each upstream component publishes its artifacts under a different scheme:
Helm charts on GitHub releases or an OCI registry, ``greptime`` binaries whose
package name changed at a breaking-change release, and ``etcd`` binaries
packaged per operating system.  A resolver encapsulates one scheme behind
:class:`BaseResolver` and is registered in :data:`RESOLVERS` under its
``(type, name)`` key; adding a component means registering a resolver rather
than editing shared branching logic.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Dict, Optional, Tuple, Union

from .cancellation import CancellationToken, check_cancelled
from .constants import (
    DEFAULT_ETCD_BINARY_VERSION,
    ETCD_BINARY_NAME,
    ETCD_CHART_NAME,
    ETCD_GITHUB_OWNER,
    ETCD_GITHUB_REPO,
    GREPTIME_BINARY_NAME,
    GREPTIME_BREAKING_CHANGE_VERSION,
    GREPTIMEDB_GITHUB_OWNER,
    GREPTIMEDB_GITHUB_REPO,
    REGIONAL_BINARY_ALIASES,
)
from .discovery import (
    ChartIndexDiscovery,
    FixedVersionDiscovery,
    GitHubReleaseDiscovery,
    RegionalPointerDiscovery,
    ResolveContext,
    VersionDiscovery,
)
from .errors import NotFound, UnsupportedPlatform
from .models import ArtifactType, Source, is_latest
from .oci import OCIReference
from .settings import PlatformSettings, ResolvedConfig, get_default_config
from .versioning import is_at_least

ResolverKey = Tuple[ArtifactType, str]


def chart_file_name(name: str, version: str) -> str:
    return f"{name}-{version}.tgz"


# --- BaseResolver ----------------------------------------------------------------


class BaseResolver:
    """Shared contract for turning a pinned version into a file name and URL."""

    artifact_type: ArtifactType

    def discovery(self, from_region: bool) -> VersionDiscovery:
        """Return the strategy used to look up the ``latest`` version."""

        return RegionalPointerDiscovery()

    def discover_latest(self, name: str, from_region: bool, context: ResolveContext) -> str:
        strategy = self.discovery(from_region)
        context.logger.debug(
            "discovering latest version",
            extra=context.log_extra(
                artifact=name,
                strategy=type(strategy).__name__,
                from_region=from_region,
            ),
        )
        return strategy.discover(name, self.artifact_type, context)

    def locate(
        self, name: str, version: str, from_region: bool, context: ResolveContext
    ) -> Tuple[str, str]:
        """Return ``(file_name, url)`` for a pinned version."""

        raise NotImplementedError

    def resolve(
        self, name: str, version: Optional[str], from_region: bool, context: ResolveContext
    ) -> Source:
        if is_latest(version):
            version = self.discover_latest(name, from_region, context)
        check_cancelled(context.cancellation_token, f"resolve {name}")
        file_name, url = self.locate(name, version, from_region, context)
        return Source(
            name=name,
            version=version,
            type=self.artifact_type,
            file_name=file_name,
            url=url,
            from_region=from_region,
        )


# --- Chart resolvers ---------------------------------------------------------------


class ReleaseChartResolver(BaseResolver):
    """Charts published as GitHub release assets and mirrored regionally."""

    artifact_type = ArtifactType.CHART

    def discovery(self, from_region: bool) -> VersionDiscovery:
        if from_region:
            return RegionalPointerDiscovery()
        return ChartIndexDiscovery()

    def locate(
        self, name: str, version: str, from_region: bool, context: ResolveContext
    ) -> Tuple[str, str]:
        file_name = chart_file_name(name, version)
        mirrors = context.config.mirrors
        if from_region:
            url = f"{mirrors.regional_charts_url}/{name}/{version}/{file_name}"
        else:
            url = f"{mirrors.chart_release_download_url}/{name}-{version}/{file_name}"
        return file_name, url


class OCIChartResolver(ReleaseChartResolver):
    """Charts pulled from a fixed OCI registry, whatever the region."""

    def __init__(self, registry_url: Optional[str] = None) -> None:
        self.registry_url = registry_url

    def locate(
        self, name: str, version: str, from_region: bool, context: ResolveContext
    ) -> Tuple[str, str]:
        registry = self.registry_url or context.config.mirrors.etcd_oci_registry
        # Pulls are stored under the repository name, whatever the resolver key.
        return chart_file_name(OCIReference.parse(registry).chart_name, version), registry


# --- Binary resolvers --------------------------------------------------------------


class EtcdBinaryResolver(BaseResolver):
    """etcd release packages, one archive format per operating system."""

    artifact_type = ArtifactType.BINARY

    EXTENSIONS = {"darwin": ".zip", "linux": ".tar.gz"}

    def discovery(self, from_region: bool) -> VersionDiscovery:
        if from_region:
            return RegionalPointerDiscovery()
        # Public etcd releases are pinned to a known-good version.
        return FixedVersionDiscovery(DEFAULT_ETCD_BINARY_VERSION)

    def package_extension(self, platform: PlatformSettings) -> str:
        try:
            return self.EXTENSIONS[platform.os]
        except KeyError:
            raise UnsupportedPlatform(
                f"etcd binaries are not published for OS {platform.os!r}"
            ) from None

    def locate(
        self, name: str, version: str, from_region: bool, context: ResolveContext
    ) -> Tuple[str, str]:
        target = context.target
        extension = self.package_extension(target)
        mirrors = context.config.mirrors
        if from_region:
            base = mirrors.regional_binaries_url(ETCD_BINARY_NAME)
        else:
            base = f"{mirrors.github_download_url}/{ETCD_GITHUB_OWNER}/{ETCD_GITHUB_REPO}/releases/download"
        url = f"{base}/{version}/etcd-{version}-{target.os}-{target.arch}{extension}"
        return posixpath.basename(url), url


class GreptimeBinaryResolver(BaseResolver):
    """greptime release packages, renamed at a breaking-change release."""

    artifact_type = ArtifactType.BINARY

    def __init__(self, breaking_change_version: str = GREPTIME_BREAKING_CHANGE_VERSION) -> None:
        self.breaking_change_version = breaking_change_version

    def discovery(self, from_region: bool) -> VersionDiscovery:
        if from_region:
            return RegionalPointerDiscovery()
        return GitHubReleaseDiscovery(GREPTIMEDB_GITHUB_OWNER, GREPTIMEDB_GITHUB_REPO)

    def package_name(self, version: str, platform: PlatformSettings) -> str:
        if is_at_least(version, self.breaking_change_version):
            return f"greptime-{platform.os}-{platform.arch}-{version}.tar.gz"
        return f"greptime-{platform.os}-{platform.arch}.tgz"

    def locate(
        self, name: str, version: str, from_region: bool, context: ResolveContext
    ) -> Tuple[str, str]:
        package = self.package_name(version, context.target)
        mirrors = context.config.mirrors
        if from_region:
            base = mirrors.regional_binaries_url(REGIONAL_BINARY_ALIASES[GREPTIME_BINARY_NAME])
        else:
            base = (
                f"{mirrors.github_download_url}/{GREPTIMEDB_GITHUB_OWNER}/"
                f"{GREPTIMEDB_GITHUB_REPO}/releases/download"
            )
        url = f"{base}/{version}/{package}"
        return posixpath.basename(url), url


# --- Resolver registry -------------------------------------------------------------

RESOLVERS: Dict[ResolverKey, BaseResolver] = {
    (ArtifactType.CHART, ETCD_CHART_NAME): OCIChartResolver(),
    (ArtifactType.BINARY, ETCD_BINARY_NAME): EtcdBinaryResolver(),
    (ArtifactType.BINARY, GREPTIME_BINARY_NAME): GreptimeBinaryResolver(),
}

# Fallbacks used when no resolver is registered for a specific name.
DEFAULT_RESOLVERS: Dict[ArtifactType, BaseResolver] = {
    ArtifactType.CHART: ReleaseChartResolver(),
}


def register_resolver(
    artifact_type: Union[ArtifactType, str], name: str, resolver: BaseResolver
) -> None:
    """Register ``resolver`` for artifacts of ``artifact_type`` called ``name``."""

    RESOLVERS[(ArtifactType.parse(artifact_type), name)] = resolver


def get_resolver(artifact_type: Union[ArtifactType, str], name: str) -> BaseResolver:
    """Return the resolver responsible for ``(artifact_type, name)``.

    Raises:
        UnknownType: If ``artifact_type`` is not a chart or binary.
        NotFound: If no resolver handles binaries called ``name``.
    """

    kind = ArtifactType.parse(artifact_type)
    resolver = RESOLVERS.get((kind, name)) or DEFAULT_RESOLVERS.get(kind)
    if resolver is None:
        raise NotFound(f"no resolver registered for {kind.value} {name!r}")
    return resolver


def resolve(
    name: str,
    version: Optional[str],
    artifact_type: Union[ArtifactType, str],
    from_region: bool = False,
    *,
    config: Optional[ResolvedConfig] = None,
    platform: Optional[PlatformSettings] = None,
    cancellation_token: Optional[CancellationToken] = None,
    nightly: bool = False,
    logger: Optional[logging.Logger] = None,
) -> Source:
    """Resolve a logical artifact request into a downloadable :class:`Source`.

    Args:
        name: Component name such as ``greptimedb``, ``etcd`` or ``greptime``.
        version: Concrete version, or ``latest``/empty to discover the newest.
        artifact_type: Chart or binary.
        from_region: Use the regional mirror for discovery and downloads.
        config: Configuration; defaults to :func:`get_default_config`.
        platform: Target OS/architecture; defaults to ``config.platform``.
        cancellation_token: Checked before each network request.
        nightly: Read the nightly pointer file during regional discovery.
        logger: Logger for structured resolution events.

    Returns:
        A :class:`Source` whose ``version`` is never ``latest``.

    Raises:
        UnknownType: For artifact types outside chart and binary.
        UpstreamUnavailable: If version discovery fails.
        NotFound: If the chart index lacks ``name``.
        InvalidIndex: If the chart index is malformed.
        UnsupportedPlatform: If no package exists for the target OS.
        ParseError: If a version cannot be compared semantically.
    """

    resolver = get_resolver(artifact_type, name)
    context = ResolveContext(
        config=config or get_default_config(),
        platform=platform,
        cancellation_token=cancellation_token,
        logger=logger or logging.getLogger("Gtctl.Artifacts"),
        nightly=nightly,
    )
    source = resolver.resolve(name, version, from_region, context)
    context.logger.info(
        "resolved artifact source",
        extra={
            "stage": "resolve",
            "artifact": source.name,
            "version": source.version,
            "type": source.type.value,
            "url": source.url,
            "from_region": source.from_region,
        },
    )
    return source


__all__ = [
    "BaseResolver",
    "ReleaseChartResolver",
    "OCIChartResolver",
    "EtcdBinaryResolver",
    "GreptimeBinaryResolver",
    "RESOLVERS",
    "DEFAULT_RESOLVERS",
    "register_resolver",
    "get_resolver",
    "resolve",
    "chart_file_name",
]
