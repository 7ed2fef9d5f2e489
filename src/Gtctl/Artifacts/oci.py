"""Anonymous Helm chart pulls from OCI registries.

Charts such as the Bitnami ``etcd`` chart are distributed only through an OCI
registry.  A pull follows the OCI distribution protocol: request the manifest
for ``<repository>:<version>``, negotiate an anonymous bearer token when the
registry answers with a ``WWW-Authenticate`` challenge, then stream the layer
whose media type marks Helm chart content into ``<chart>-<version>.tgz``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import httpx

from . import net
from .cancellation import CancellationToken, check_cancelled
from .constants import HELM_CHART_LAYER_MEDIA_TYPE
from .errors import ConfigError, DownloadFailed, NotFound, UpstreamUnavailable
from .settings import HttpSettings

__all__ = ["OCIReference", "OCIPullResult", "is_oci_url", "pull_chart"]

LOGGER = logging.getLogger("Gtctl.Artifacts.oci")

OCI_SCHEME = "oci://"
MANIFEST_MEDIA_TYPES = ", ".join(
    [
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def is_oci_url(url: str) -> bool:
    return url.startswith(OCI_SCHEME)


@dataclass(frozen=True)
class OCIReference:
    """Registry host and repository named by an ``oci://`` URL."""

    registry: str
    repository: str

    @classmethod
    def parse(cls, url: str) -> "OCIReference":
        if not is_oci_url(url):
            raise ConfigError(f"not an OCI reference: {url}")
        remainder = url[len(OCI_SCHEME) :].strip("/")
        registry, _, repository = remainder.partition("/")
        # A trailing tag is ignored; the chart version selects the tag.
        last = repository.rsplit("/", 1)[-1]
        if ":" in last:
            repository = repository[: len(repository) - len(last)] + last.split(":", 1)[0]
        if not registry or not repository:
            raise ConfigError(f"OCI reference {url!r} must name a registry and repository")
        return cls(registry=registry, repository=repository)

    @property
    def chart_name(self) -> str:
        return self.repository.rsplit("/", 1)[-1]

    @property
    def base_url(self) -> str:
        return f"https://{self.registry}/v2/{self.repository}"

    def manifest_url(self, tag: str) -> str:
        return f"{self.base_url}/manifests/{tag}"

    def blob_url(self, digest: str) -> str:
        return f"{self.base_url}/blobs/{digest}"


@dataclass(frozen=True)
class OCIPullResult:
    reference: str
    digest: Optional[str]
    path: Path


def parse_challenge(header: str) -> Dict[str, str]:
    """Parse a ``Bearer realm="...",service="...",scope="..."`` challenge."""

    scheme, _, params = header.partition(" ")
    if scheme.lower() != "bearer":
        return {}
    return {key.lower(): value for key, value in _CHALLENGE_PARAM.findall(params)}


def _fetch_token(
    challenge: Dict[str, str],
    reference: OCIReference,
    *,
    settings: HttpSettings,
    cancellation_token: Optional[CancellationToken],
    logger: logging.Logger,
) -> str:
    realm = challenge.get("realm")
    if not realm:
        raise UpstreamUnavailable(
            f"registry {reference.registry} sent an authentication challenge without a realm"
        )
    query = {"scope": challenge.get("scope") or f"repository:{reference.repository}:pull"}
    if challenge.get("service"):
        query["service"] = challenge["service"]
    url = str(httpx.URL(realm, params=query))
    response = net.get(
        url, settings=settings, cancellation_token=cancellation_token, logger=logger
    )
    try:
        payload = response.json()
    except ValueError as exc:
        raise UpstreamUnavailable(f"token endpoint {realm} returned invalid JSON", url=realm) from exc
    token = payload.get("token") or payload.get("access_token")
    if not token:
        raise UpstreamUnavailable(f"token endpoint {realm} returned no token", url=realm)
    return str(token)


def _get_manifest(
    reference: OCIReference,
    tag: str,
    *,
    settings: HttpSettings,
    cancellation_token: Optional[CancellationToken],
    logger: logging.Logger,
) -> tuple[dict, Dict[str, str]]:
    url = reference.manifest_url(tag)
    headers = {"Accept": MANIFEST_MEDIA_TYPES}
    client = net.get_http_client(settings)

    def _request(extra: Dict[str, str]) -> httpx.Response:
        check_cancelled(cancellation_token, f"pull {url}")
        try:
            return client.get(
                url,
                headers={**headers, **extra},
                timeout=net.request_timeout(settings, cancellation_token),
            )
        except httpx.HTTPError as exc:
            raise net.transport_error(url, exc) from exc

    auth: Dict[str, str] = {}
    response = _request(auth)
    if response.status_code == 401:
        challenge = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if not challenge:
            raise DownloadFailed(
                f"registry {reference.registry} requires unsupported authentication",
                url=url,
                status_code=401,
            )
        token = _fetch_token(
            challenge,
            reference,
            settings=settings,
            cancellation_token=cancellation_token,
            logger=logger,
        )
        auth = {"Authorization": f"Bearer {token}"}
        response = _request(auth)
    if response.status_code == 404:
        raise NotFound(f"{reference.repository}:{tag} not found in {reference.registry}")
    if response.status_code != 200:
        raise DownloadFailed(
            f"manifest request failed, status code: {response.status_code}",
            url=url,
            status_code=response.status_code,
        )
    try:
        manifest = response.json()
    except ValueError as exc:
        raise UpstreamUnavailable(f"manifest at {url} is not valid JSON", url=url) from exc
    return manifest, auth


def pull_chart(
    url: str,
    version: str,
    dest_dir: Path,
    *,
    settings: Optional[HttpSettings] = None,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> OCIPullResult:
    """Pull the Helm chart ``url:version`` into ``dest_dir/<chart>-<version>.tgz``.

    Raises:
        NotFound: If the tag or its chart layer does not exist.
        DownloadFailed: If the registry answers with an unexpected status.
        UpstreamUnavailable: On transport or token negotiation failures.
        Cancelled: If ``cancellation_token`` fires.
    """

    cfg = settings or HttpSettings()
    log = logger or LOGGER
    reference = OCIReference.parse(url)
    manifest, auth = _get_manifest(
        reference,
        version,
        settings=cfg,
        cancellation_token=cancellation_token,
        logger=log,
    )
    layer = next(
        (
            entry
            for entry in manifest.get("layers") or []
            if entry.get("mediaType") == HELM_CHART_LAYER_MEDIA_TYPE
        ),
        None,
    )
    if layer is None or not layer.get("digest"):
        raise NotFound(f"{url}:{version} contains no Helm chart layer")

    destination = Path(dest_dir) / f"{reference.chart_name}-{version}.tgz"
    net.download_to_path(
        reference.blob_url(layer["digest"]),
        destination,
        settings=cfg,
        headers=auth,
        cancellation_token=cancellation_token,
        logger=log,
    )
    log.info(
        "pulled chart from OCI registry",
        extra={
            "stage": "oci",
            "reference": f"{url}:{version}",
            "digest": layer["digest"],
            "path": str(destination),
        },
    )
    return OCIPullResult(reference=f"{url}:{version}", digest=layer["digest"], path=destination)
