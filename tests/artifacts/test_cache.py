"""Cache path allocation, working directory handling, and per-key locking."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from Gtctl.Artifacts.cache import ArtifactCache, default_working_dir
from Gtctl.Artifacts.errors import ConfigError, UnknownType
from Gtctl.Artifacts.models import ArtifactType, Source
from Gtctl.Artifacts.settings import ResolvedConfig


def test_chart_path_layout(cache: ArtifactCache) -> None:
    path = cache.allocate(ArtifactType.CHART, "greptimedb", "0.1.1")
    assert path == cache.working_dir / "artifacts" / "charts" / "greptimedb" / "0.1.1" / "pkg"


def test_chart_ignores_install_flag(cache: ArtifactCache) -> None:
    assert cache.allocate("chart", "etcd", "9.2.0", True) == cache.allocate("chart", "etcd", "9.2.0")


def test_binary_package_and_install_paths(cache: ArtifactCache) -> None:
    base = cache.working_dir / "artifacts" / "binaries" / "greptime" / "v0.4.0"
    assert cache.allocate(ArtifactType.BINARY, "greptime", "v0.4.0") == base / "pkg"
    assert cache.allocate(ArtifactType.BINARY, "greptime", "v0.4.0", want_install_path=True) == base / "bin"


def test_allocate_is_pure(cache: ArtifactCache) -> None:
    first = cache.allocate("binary", "etcd", "v3.5.7")
    second = cache.allocate("binary", "etcd", "v3.5.7")
    assert first == second
    assert not first.exists()


def test_distinct_identities_never_collide(cache: ArtifactCache) -> None:
    paths = {
        cache.allocate("chart", "etcd", "9.2.0"),
        cache.allocate("binary", "etcd", "9.2.0"),
        cache.allocate("chart", "etcd", "9.2.1"),
        cache.allocate("chart", "greptimedb", "9.2.0"),
    }
    assert len(paths) == 4


def test_unknown_type_rejected(cache: ArtifactCache) -> None:
    with pytest.raises(UnknownType):
        cache.allocate("plugin", "greptimedb", "0.1.0")


@pytest.mark.parametrize("name", ["../escape", "a/b", "", ".."])
def test_unsafe_components_rejected(cache: ArtifactCache, name: str) -> None:
    with pytest.raises(ConfigError):
        cache.allocate("chart", name, "0.1.0")


def test_allocate_for_source(cache: ArtifactCache) -> None:
    source = Source(
        name="greptime",
        version="v0.4.0",
        type=ArtifactType.BINARY,
        file_name="greptime-linux-amd64-v0.4.0.tar.gz",
        url="https://example.invalid/greptime.tar.gz",
    )
    assert cache.allocate_for(source, want_install_path=True).name == "bin"


def test_set_home_dir_moves_working_tree(cache: ArtifactCache, tmp_path: Path) -> None:
    cache.set_home_dir(tmp_path / "elsewhere")
    assert cache.working_dir == tmp_path / "elsewhere" / ".gtctl"
    assert cache.allocate("chart", "etcd", "9.2.0").is_relative_to(tmp_path / "elsewhere")


def test_default_working_dir_uses_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    assert default_working_dir() == tmp_path / ".gtctl"
    assert ArtifactCache().working_dir == tmp_path / ".gtctl"


def test_from_config_uses_home_dir(tmp_path: Path) -> None:
    config = ResolvedConfig(home_dir=tmp_path)
    assert ArtifactCache.from_config(config).working_dir == tmp_path / ".gtctl"


def test_clean_removes_working_tree(cache: ArtifactCache) -> None:
    target = cache.allocate("chart", "greptimedb", "0.1.1")
    target.mkdir(parents=True)
    (target / "greptimedb-0.1.1.tgz").write_bytes(b"chart")
    cache.clean()
    assert not cache.working_dir.exists()
    cache.clean()


def test_lock_serialises_same_key(cache: ArtifactCache) -> None:
    active = []
    overlaps = []

    def worker() -> None:
        with cache.lock("binary", "etcd", "v3.5.7"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.05)
            active.pop()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert (cache.version_dir("binary", "etcd", "v3.5.7") / ".lock").exists()
