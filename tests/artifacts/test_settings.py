"""Configuration defaults, normalisation, and ``GTCTL_*`` environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from Gtctl.Artifacts.settings import (
    ExtractionSettings,
    HttpSettings,
    LoggingConfiguration,
    MirrorSettings,
    PlatformSettings,
    ResolvedConfig,
    detect_platform,
    get_default_config,
    invalidate_default_config_cache,
    normalize_arch,
    normalize_os,
)


def test_http_defaults_disable_retries_and_timeouts() -> None:
    settings = HttpSettings()
    assert settings.max_retries == 0
    assert settings.timeout_sec is None
    assert settings.connect_timeout_sec is None


def test_extraction_ratio_guard_is_opt_in() -> None:
    assert ExtractionSettings().max_compression_ratio is None
    assert ExtractionSettings(max_compression_ratio=50).max_compression_ratio == 50
    with pytest.raises(ValidationError):
        ExtractionSettings(max_compression_ratio=0)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("x86_64", "amd64"), ("AMD64", "amd64"), ("aarch64", "arm64"), ("arm64", "arm64"), ("riscv64", "riscv64")],
)
def test_normalize_arch(raw: str, expected: str) -> None:
    assert normalize_arch(raw) == expected


@pytest.mark.parametrize(("raw", "expected"), [("Darwin", "darwin"), ("Linux", "linux"), ("Windows", "windows")])
def test_normalize_os(raw: str, expected: str) -> None:
    assert normalize_os(raw) == expected


def test_platform_settings_normalise_on_assignment() -> None:
    platform = PlatformSettings(os="Darwin", arch="x86_64")
    assert (platform.os, platform.arch) == ("darwin", "amd64")
    platform.arch = "aarch64"
    assert platform.arch == "arm64"


def test_detect_platform(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("platform.system", lambda: "Linux")
    monkeypatch.setattr("platform.machine", lambda: "aarch64")
    assert detect_platform() == PlatformSettings(os="linux", arch="arm64")


def test_mirror_urls_are_validated() -> None:
    mirrors = MirrorSettings(regional_release_bucket="https://mirror.example.invalid/releases/")
    assert mirrors.regional_charts_url == "https://mirror.example.invalid/releases/charts"
    assert mirrors.regional_binaries_url("etcd") == "https://mirror.example.invalid/releases/etcd"
    with pytest.raises(ValidationError):
        MirrorSettings(chart_index_url="ftp://example.invalid/index.yaml")
    with pytest.raises(ValidationError):
        MirrorSettings(etcd_oci_registry="https://registry-1.docker.io/bitnamicharts/etcd")


def test_logging_level_validation() -> None:
    assert LoggingConfiguration(level="debug").level == "DEBUG"
    with pytest.raises(ValidationError):
        LoggingConfiguration(level="verbose")


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GTCTL_HOME", str(tmp_path))
    monkeypatch.setenv("GTCTL_TIMEOUT_SEC", "12.5")
    monkeypatch.setenv("GTCTL_MAX_RETRIES", "3")
    monkeypatch.setenv("GTCTL_LOG_LEVEL", "warning")
    monkeypatch.setenv("GTCTL_FROM_REGION_BASE", "https://mirror.example.invalid/releases")
    monkeypatch.setenv("GTCTL_PLATFORM_OS", "Darwin")
    monkeypatch.setenv("GTCTL_PLATFORM_ARCH", "aarch64")
    monkeypatch.setenv("GTCTL_GITHUB_TOKEN", "ghp_example")

    config = ResolvedConfig.from_defaults()

    assert config.home_dir == tmp_path
    assert config.http.timeout_sec == 12.5
    assert config.http.max_retries == 3
    assert config.logging.level == "WARNING"
    assert config.mirrors.regional_release_bucket == "https://mirror.example.invalid/releases"
    assert (config.platform.os, config.platform.arch) == ("darwin", "arm64")
    assert config.http.github_token == "ghp_example"


def test_invalid_override_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GTCTL_MAX_RETRIES", "-1")
    with pytest.raises(ValidationError):
        ResolvedConfig.from_defaults()


def test_default_config_is_memoised(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_default_config()
    assert get_default_config() is first
    copied = get_default_config(copy=True)
    assert copied is not first
    assert copied == first

    monkeypatch.setenv("GTCTL_MAX_RETRIES", "2")
    assert get_default_config().http.max_retries == 0
    invalidate_default_config_cache()
    assert get_default_config().http.max_retries == 2
