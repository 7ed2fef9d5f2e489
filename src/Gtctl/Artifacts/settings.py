"""Configuration models for artifact resolution and download.

The settings layer collects every tunable used by the artifact core into
Pydantic models: HTTP behaviour, upstream mirror locations, the target
platform, archive safety limits, and logging.  A memoised
:class:`ResolvedConfig` built from defaults plus ``GTCTL_*`` environment
overrides is exposed through :func:`get_default_config`.
"""

from __future__ import annotations

import logging
import platform as _platform
import threading
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import constants

__all__ = [
    "HttpSettings",
    "MirrorSettings",
    "PlatformSettings",
    "ExtractionSettings",
    "LoggingConfiguration",
    "ResolvedConfig",
    "EnvironmentOverrides",
    "detect_platform",
    "normalize_os",
    "normalize_arch",
    "get_default_config",
    "invalidate_default_config_cache",
]

_OS_ALIASES = {
    "darwin": "darwin",
    "macos": "darwin",
    "linux": "linux",
    "windows": "windows",
    "win32": "windows",
    "freebsd": "freebsd",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "i386": "386",
    "i686": "386",
}


def normalize_os(value: str) -> str:
    """Map ``platform.system()`` style names onto release-asset OS names."""

    lowered = value.strip().lower()
    return _OS_ALIASES.get(lowered, lowered)


def normalize_arch(value: str) -> str:
    """Map ``platform.machine()`` style names onto release-asset arch names."""

    lowered = value.strip().lower()
    return _ARCH_ALIASES.get(lowered, lowered)


class HttpSettings(BaseModel):
    """HTTP client behaviour shared by discovery and download requests."""

    timeout_sec: Optional[float] = Field(
        default=None, gt=0, description="Read/write timeout in seconds; unset means no timeout"
    )
    connect_timeout_sec: Optional[float] = Field(default=None, gt=0)
    max_retries: int = Field(
        default=0,
        ge=0,
        description="Additional attempts for transient failures; zero disables retries",
    )
    backoff_factor: float = Field(default=0.5, ge=0)
    max_backoff_sec: float = Field(default=30.0, gt=0)
    chunk_size: int = Field(default=1 << 16, gt=0, description="Streaming chunk size in bytes")
    user_agent: str = Field(default="gtctl-artifacts/0.1")
    github_token: Optional[str] = Field(
        default=None, description="Optional token sent to the GitHub releases API"
    )

    model_config = {"validate_assignment": True}


class MirrorSettings(BaseModel):
    """Upstream locations for chart indexes, releases, and the regional bucket."""

    chart_index_url: str = constants.CHART_INDEX_URL
    chart_release_download_url: str = constants.CHART_RELEASE_DOWNLOAD_URL
    regional_release_bucket: str = constants.REGIONAL_RELEASE_BUCKET
    github_api_url: str = constants.GITHUB_API_URL
    github_download_url: str = constants.GITHUB_DOWNLOAD_URL
    etcd_oci_registry: str = constants.ETCD_OCI_REGISTRY

    @field_validator(
        "chart_index_url",
        "chart_release_download_url",
        "regional_release_bucket",
        "github_api_url",
        "github_download_url",
    )
    @classmethod
    def validate_http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"expected an http(s) URL, got {value!r}")
        return value.rstrip("/")

    @field_validator("etcd_oci_registry")
    @classmethod
    def validate_oci_url(cls, value: str) -> str:
        if not value.startswith("oci://"):
            raise ValueError(f"expected an oci:// reference, got {value!r}")
        return value.rstrip("/")

    @property
    def regional_charts_url(self) -> str:
        return f"{self.regional_release_bucket}/charts"

    def regional_binaries_url(self, name: str) -> str:
        return f"{self.regional_release_bucket}/{name}"

    model_config = {"validate_assignment": True}


class PlatformSettings(BaseModel):
    """Operating system and CPU architecture that binary packages target."""

    os: str
    arch: str

    @field_validator("os")
    @classmethod
    def validate_os(cls, value: str) -> str:
        return normalize_os(value)

    @field_validator("arch")
    @classmethod
    def validate_arch(cls, value: str) -> str:
        return normalize_arch(value)

    model_config = {"validate_assignment": True}


def detect_platform() -> PlatformSettings:
    """Return the host platform using Go-style OS and architecture names."""

    return PlatformSettings(os=_platform.system(), arch=_platform.machine())


class ExtractionSettings(BaseModel):
    """Safety limits applied when unpacking downloaded archives."""

    max_compression_ratio: Optional[float] = Field(
        default=None,
        gt=0,
        description="Reject archives expanding beyond this multiple of their size; unset disables",
    )

    model_config = {"validate_assignment": True}


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for the artifact core."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=20, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=14, ge=1, description="Retention period for log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class ResolvedConfig(BaseModel):
    """Materialised configuration consumed by resolvers and the download engine."""

    http: HttpSettings = Field(default_factory=HttpSettings)
    mirrors: MirrorSettings = Field(default_factory=MirrorSettings)
    platform: PlatformSettings = Field(default_factory=detect_platform)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    home_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding the .gtctl working tree; defaults to the user's home",
    )

    @classmethod
    def from_defaults(cls) -> "ResolvedConfig":
        """Construct a configuration from defaults plus environment overrides."""

        config = cls()
        _apply_env_overrides(config)
        return config

    model_config = {"validate_assignment": True}


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    home: Optional[Path] = Field(default=None, alias="GTCTL_HOME")
    timeout_sec: Optional[float] = Field(default=None, alias="GTCTL_TIMEOUT_SEC")
    max_retries: Optional[int] = Field(default=None, alias="GTCTL_MAX_RETRIES")
    log_level: Optional[str] = Field(default=None, alias="GTCTL_LOG_LEVEL")
    regional_release_bucket: Optional[str] = Field(default=None, alias="GTCTL_FROM_REGION_BASE")
    platform_os: Optional[str] = Field(default=None, alias="GTCTL_PLATFORM_OS")
    platform_arch: Optional[str] = Field(default=None, alias="GTCTL_PLATFORM_ARCH")
    github_token: Optional[str] = Field(default=None, alias="GTCTL_GITHUB_TOKEN")

    model_config = SettingsConfigDict(env_prefix="GTCTL_", case_sensitive=False, extra="ignore")


def _apply_env_overrides(config: ResolvedConfig) -> None:
    """Mutate ``config`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    logger = logging.getLogger("Gtctl.Artifacts")

    if env.home is not None:
        config.home_dir = env.home
        logger.info("Config overridden: home_dir=%s", env.home, extra={"stage": "config"})
    if env.timeout_sec is not None:
        config.http.timeout_sec = env.timeout_sec
        logger.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})
    if env.max_retries is not None:
        config.http.max_retries = int(env.max_retries)
        logger.info("Config overridden: max_retries=%s", env.max_retries, extra={"stage": "config"})
    if env.log_level is not None:
        config.logging.level = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.regional_release_bucket is not None:
        config.mirrors.regional_release_bucket = env.regional_release_bucket
        logger.info(
            "Config overridden: regional_release_bucket=%s",
            env.regional_release_bucket,
            extra={"stage": "config"},
        )
    if env.platform_os is not None:
        config.platform.os = env.platform_os
        logger.info("Config overridden: platform.os=%s", env.platform_os, extra={"stage": "config"})
    if env.platform_arch is not None:
        config.platform.arch = env.platform_arch
        logger.info(
            "Config overridden: platform.arch=%s", env.platform_arch, extra={"stage": "config"}
        )
    if env.github_token is not None:
        config.http.github_token = env.github_token


_DEFAULT_CONFIG_LOCK = threading.RLock()
_DEFAULT_CONFIG_CACHE: Optional[ResolvedConfig] = None


def get_default_config(*, copy: bool = False) -> ResolvedConfig:
    """Return a memoised :class:`ResolvedConfig` constructed from defaults."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG_CACHE is None:
            _DEFAULT_CONFIG_CACHE = ResolvedConfig.from_defaults()
        cached = _DEFAULT_CONFIG_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_config_cache() -> None:
    """Invalidate the cached default configuration."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG_CACHE = None
