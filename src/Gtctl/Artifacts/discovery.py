"""Strategies that turn the ``latest`` sentinel into a concrete version.

Three upstreams publish "newest version" information:

* the regional release bucket, via small ``latest-version.txt`` pointer files;
* the public Helm chart repository ``index.yaml``;
* the GitHub "latest release" API.

Each strategy implements :meth:`VersionDiscovery.discover` so resolvers can
combine them without knowing how the lookup is performed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from . import net
from .cancellation import CancellationToken
from .constants import (
    LATEST_NIGHTLY_VERSION_POINTER,
    LATEST_VERSION_POINTER,
    REGIONAL_BINARY_ALIASES,
)
from .errors import UpstreamUnavailable
from .index import parse_index
from .models import ArtifactType
from .settings import PlatformSettings, ResolvedConfig, get_default_config

__all__ = [
    "ResolveContext",
    "VersionDiscovery",
    "RegionalPointerDiscovery",
    "ChartIndexDiscovery",
    "GitHubReleaseDiscovery",
    "FixedVersionDiscovery",
]


@dataclass
class ResolveContext:
    """Per-call state threaded through resolvers and discovery strategies."""

    config: ResolvedConfig = field(default_factory=get_default_config)
    platform: Optional[PlatformSettings] = None
    cancellation_token: Optional[CancellationToken] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("Gtctl.Artifacts"))
    nightly: bool = False

    @property
    def target(self) -> PlatformSettings:
        return self.platform or self.config.platform

    def log_extra(self, **fields: object) -> Dict[str, object]:
        payload: Dict[str, object] = {"stage": "discover"}
        payload.update(fields)
        return payload


class VersionDiscovery:
    """Base class for ``latest`` version lookups."""

    def discover(self, name: str, artifact_type: ArtifactType, context: ResolveContext) -> str:
        raise NotImplementedError


class RegionalPointerDiscovery(VersionDiscovery):
    """Read the version recorded in the regional bucket's pointer file."""

    def pointer_url(self, name: str, artifact_type: ArtifactType, context: ResolveContext) -> str:
        mirrors = context.config.mirrors
        pointer = LATEST_NIGHTLY_VERSION_POINTER if context.nightly else LATEST_VERSION_POINTER
        if artifact_type is ArtifactType.CHART:
            return f"{mirrors.regional_charts_url}/{name}/{pointer}"
        published = REGIONAL_BINARY_ALIASES.get(name, name)
        return f"{mirrors.regional_binaries_url(published)}/{pointer}"

    def discover(self, name: str, artifact_type: ArtifactType, context: ResolveContext) -> str:
        url = self.pointer_url(name, artifact_type, context)
        response = net.get(
            url,
            settings=context.config.http,
            cancellation_token=context.cancellation_token,
            logger=context.logger,
        )
        version = response.text.rstrip("\r\n").strip()
        if not version:
            raise UpstreamUnavailable(f"version pointer {url} is empty", url=url)
        context.logger.info(
            "resolved latest version from regional pointer",
            extra=context.log_extra(artifact=name, version=version, url=url),
        )
        return version


class ChartIndexDiscovery(VersionDiscovery):
    """Take the newest version of a chart from the public repository index."""

    def discover(self, name: str, artifact_type: ArtifactType, context: ResolveContext) -> str:
        url = context.config.mirrors.chart_index_url
        response = net.get(
            url,
            settings=context.config.http,
            cancellation_token=context.cancellation_token,
            logger=context.logger,
        )
        entry = parse_index(response.content).latest(name)
        context.logger.info(
            "resolved latest chart version from index",
            extra=context.log_extra(artifact=name, version=entry.version, url=url),
        )
        return entry.version


class GitHubReleaseDiscovery(VersionDiscovery):
    """Ask the GitHub releases API for a repository's latest release tag."""

    def __init__(self, owner: str, repo: str) -> None:
        self.owner = owner
        self.repo = repo

    def api_url(self, context: ResolveContext) -> str:
        base = context.config.mirrors.github_api_url
        return f"{base}/repos/{self.owner}/{self.repo}/releases/latest"

    def discover(self, name: str, artifact_type: ArtifactType, context: ResolveContext) -> str:
        url = self.api_url(context)
        headers = {"Accept": "application/vnd.github+json"}
        token = context.config.http.github_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = net.get(
            url,
            settings=context.config.http,
            headers=headers,
            cancellation_token=context.cancellation_token,
            logger=context.logger,
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"latest release response from {url} is not JSON", url=url) from exc
        tag = payload.get("tag_name") if isinstance(payload, dict) else None
        if not isinstance(tag, str) or not tag:
            raise UpstreamUnavailable(f"latest release response from {url} has no tag_name", url=url)
        context.logger.info(
            "resolved latest release from GitHub",
            extra=context.log_extra(artifact=name, version=tag, url=url),
        )
        return tag


class FixedVersionDiscovery(VersionDiscovery):
    """Return a pinned reference version without any network access."""

    def __init__(self, version: str) -> None:
        self.version = version

    def discover(self, name: str, artifact_type: ArtifactType, context: ResolveContext) -> str:
        return self.version
