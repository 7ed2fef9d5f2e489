# === NAVMAP v1 ===
# {
#   "module": "Gtctl.Artifacts.net",
#   "purpose": "Provide the shared HTTPX client and Tenacity retry policy for artifact networking",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client and retry policy used by discovery and downloads."""

from __future__ import annotations

import contextlib
import logging
import os
import ssl
import tempfile
import threading
from pathlib import Path
from typing import Callable, Mapping, Optional, TypeVar

import certifi
import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from .cancellation import CancellationToken, check_cancelled
from .errors import ArtifactIOError, DownloadFailed, UpstreamUnavailable
from .settings import HttpSettings

LOGGER = logging.getLogger("Gtctl.Artifacts.net")

T = TypeVar("T")

# --- Constants & globals -------------------------------------------------------

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_CLIENT_FACTORY: Optional[Callable[[], httpx.Client]] = None
_DEFAULT_SETTINGS = HttpSettings()

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(settings: HttpSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.connect_timeout_sec,
        read=settings.timeout_sec,
        write=settings.timeout_sec,
        pool=settings.connect_timeout_sec,
    )


def _response_hook(response: httpx.Response) -> None:
    LOGGER.debug(
        "artifact-http-response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
        },
    )


def _build_http_client(settings: HttpSettings) -> httpx.Client:
    return httpx.Client(
        timeout=_timeout_for(settings),
        verify=_build_ssl_context(),
        trust_env=True,
        # Release assets on GitHub are served through redirects.
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
        event_hooks={"response": [_response_hook]},
    )


def _default_file_mode() -> int:
    """Return the mode a plain ``open()`` would give a new file under the current umask."""

    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        with contextlib.suppress(Exception):
            _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


# --- Public API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    factory: Optional[Callable[[], httpx.Client]] = None,
    default_settings: Optional[HttpSettings] = None,
) -> None:
    """Override the shared HTTPX client or register a factory for tests."""

    if client is not None and factory is not None:
        raise ValueError("provide either a client or factory, not both")

    with _CLIENT_LOCK:
        global _HTTP_CLIENT, _CLIENT_FACTORY, _DEFAULT_SETTINGS

        if default_settings is not None:
            _DEFAULT_SETTINGS = default_settings

        if client is None:
            _close_client_unlocked()
        else:
            if _HTTP_CLIENT is not client:
                _close_client_unlocked()
            _HTTP_CLIENT = client

        _CLIENT_FACTORY = factory


def reset_http_client() -> None:
    """Reset the shared HTTPX client to its default configuration (test helper)."""

    with _CLIENT_LOCK:
        global _CLIENT_FACTORY
        _CLIENT_FACTORY = None
        _close_client_unlocked()


def get_http_client(settings: Optional[HttpSettings] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary."""

    global _HTTP_CLIENT

    with _CLIENT_LOCK:
        if _HTTP_CLIENT is not None:
            return _HTTP_CLIENT

        if _CLIENT_FACTORY is not None:
            candidate = _CLIENT_FACTORY()
            if not isinstance(candidate, httpx.Client):
                raise TypeError("client factory must return an httpx.Client")
            _HTTP_CLIENT = candidate
            return candidate

        _HTTP_CLIENT = _build_http_client(settings or _DEFAULT_SETTINGS)
        return _HTTP_CLIENT


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamUnavailable) and exc.retryable


def retry_policy(
    settings: HttpSettings, *, logger: Optional[logging.Logger] = None
) -> Retrying:
    """Create the Tenacity policy for one logical request.

    ``settings.max_retries`` counts additional attempts, so the default of
    zero performs exactly one attempt.  Only errors flagged ``retryable``
    (transport failures, timeouts, 429 and 5xx responses) are retried.
    """

    log = logger or LOGGER
    return Retrying(
        stop=stop_after_attempt(settings.max_retries + 1),
        wait=wait_random_exponential(
            multiplier=settings.backoff_factor, max=settings.max_backoff_sec
        ),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )


def call_with_retry(
    func: Callable[[], T],
    *,
    settings: HttpSettings,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
    context: str = "request",
) -> T:
    """Invoke ``func`` under :func:`retry_policy`, checking cancellation per attempt."""

    def _attempt() -> T:
        check_cancelled(cancellation_token, context)
        return func()

    return retry_policy(settings, logger=logger)(_attempt)


def request_timeout(
    settings: HttpSettings, cancellation_token: Optional[CancellationToken]
) -> httpx.Timeout:
    """Return per-request timeouts, shortened to fit the token's deadline."""

    remaining = cancellation_token.remaining() if cancellation_token is not None else None
    if remaining is None:
        return _timeout_for(settings)
    bound = max(remaining, 0.001)

    def _bounded(value: Optional[float]) -> float:
        return bound if value is None else min(value, bound)

    return httpx.Timeout(
        connect=_bounded(settings.connect_timeout_sec),
        read=_bounded(settings.timeout_sec),
        write=_bounded(settings.timeout_sec),
        pool=_bounded(settings.connect_timeout_sec),
    )


def transport_error(url: str, exc: httpx.HTTPError) -> UpstreamUnavailable:
    """Wrap an HTTPX exception with URL context."""

    retryable = isinstance(exc, (httpx.TransportError, httpx.TimeoutException))
    return UpstreamUnavailable(f"request to {url} failed: {exc}", url=url, retryable=retryable)


def get(
    url: str,
    *,
    settings: Optional[HttpSettings] = None,
    headers: Optional[Mapping[str, str]] = None,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> httpx.Response:
    """GET ``url`` and return the response once it answers ``200 OK``.

    Raises:
        UpstreamUnavailable: On transport failures or any non-200 status.
        Cancelled: If ``cancellation_token`` fires before or between attempts.
    """

    cfg = settings or _DEFAULT_SETTINGS
    client = get_http_client(cfg)

    def _get() -> httpx.Response:
        try:
            response = client.get(
                url,
                headers=dict(headers or {}),
                timeout=request_timeout(cfg, cancellation_token),
            )
        except httpx.HTTPError as exc:
            raise transport_error(url, exc) from exc
        if response.status_code != 200:
            raise UpstreamUnavailable(
                f"GET {url} returned status code {response.status_code}",
                url=url,
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        return response

    return call_with_retry(
        _get,
        settings=cfg,
        cancellation_token=cancellation_token,
        logger=logger,
        context=f"GET {url}",
    )


def download_to_path(
    url: str,
    destination: Path,
    *,
    settings: Optional[HttpSettings] = None,
    headers: Optional[Mapping[str, str]] = None,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Stream ``url`` into ``destination`` and return the number of bytes written.

    The body is written to a ``.part`` file beside ``destination`` and renamed
    into place only after the last chunk arrives, so an interrupted transfer
    never leaves a file at ``destination``.

    Raises:
        DownloadFailed: If the server answers with a non-200 status.
        UpstreamUnavailable: On transport failures.
        Cancelled: If ``cancellation_token`` fires during the transfer.
        ArtifactIOError: If the local file cannot be written.
    """

    cfg = settings or _DEFAULT_SETTINGS
    client = get_http_client(cfg)
    log = logger or LOGGER
    context = f"download {url}"

    def _attempt() -> int:
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{destination.name}.", suffix=".part", dir=destination.parent
            )
        except OSError as exc:
            raise ArtifactIOError(f"cannot create temporary file in {destination.parent}: {exc}") from exc
        part_path = Path(tmp_name)
        completed = False
        written = 0
        try:
            with os.fdopen(fd, "wb") as handle:
                try:
                    with client.stream(
                        "GET",
                        url,
                        headers=dict(headers or {}),
                        timeout=request_timeout(cfg, cancellation_token),
                    ) as response:
                        if response.status_code != 200:
                            raise DownloadFailed(
                                f"download failed, status code: {response.status_code}",
                                url=url,
                                status_code=response.status_code,
                                retryable=response.status_code in RETRYABLE_STATUS_CODES,
                            )
                        for chunk in response.iter_bytes(cfg.chunk_size):
                            check_cancelled(cancellation_token, context)
                            handle.write(chunk)
                            written += len(chunk)
                except httpx.HTTPError as exc:
                    raise transport_error(url, exc) from exc
            check_cancelled(cancellation_token, context)
            # mkstemp creates owner-only files.
            os.chmod(part_path, _default_file_mode())
            os.replace(part_path, destination)
            completed = True
        except OSError as exc:
            raise ArtifactIOError(f"failed to write {destination}: {exc}") from exc
        finally:
            if not completed:
                part_path.unlink(missing_ok=True)
        return written

    written = call_with_retry(
        _attempt,
        settings=cfg,
        cancellation_token=cancellation_token,
        logger=log,
        context=context,
    )
    log.info(
        "downloaded artifact",
        extra={"stage": "download", "url": url, "path": str(destination), "bytes": written},
    )
    return written


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "configure_http_client",
    "reset_http_client",
    "get_http_client",
    "retry_policy",
    "call_with_retry",
    "request_timeout",
    "transport_error",
    "get",
    "download_to_path",
]
