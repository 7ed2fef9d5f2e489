"""Binary package installation into a flat install directory."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

from Gtctl.Artifacts.cancellation import CancellationToken
from Gtctl.Artifacts.errors import ArtifactIOError, Cancelled, UnsupportedFormat
from Gtctl.Artifacts.install import install, is_executable
from Gtctl.Artifacts.testing import build_tar_gz, build_zip


@pytest.fixture
def scratch_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(root))
    return root


def test_executables_are_moved_flat(tmp_path: Path, scratch_root: Path) -> None:
    package = build_tar_gz(
        tmp_path / "etcd-v3.5.7-linux-amd64.tar.gz",
        {
            "etcd-v3.5.7-linux-amd64/etcd": "etcd",
            "etcd-v3.5.7-linux-amd64/etcdctl": "etcdctl",
            "etcd-v3.5.7-linux-amd64/tools/etcdutl": "etcdutl",
            "etcd-v3.5.7-linux-amd64/README.md": "docs",
        },
        modes={
            "etcd-v3.5.7-linux-amd64/etcd": 0o755,
            "etcd-v3.5.7-linux-amd64/etcdctl": 0o755,
            "etcd-v3.5.7-linux-amd64/tools/etcdutl": 0o700,
        },
    )
    install_dir = tmp_path / "bin"

    installed = install(package, install_dir)

    assert sorted(path.name for path in installed) == ["etcd", "etcdctl", "etcdutl"]
    assert sorted(os.listdir(install_dir)) == ["etcd", "etcdctl", "etcdutl"]
    for path in installed:
        assert os.access(path, os.X_OK)
    assert list(scratch_root.iterdir()) == []


def test_package_rooted_at_dot_installs(tmp_path: Path, scratch_root: Path) -> None:
    package = build_tar_gz(
        tmp_path / "greptime-linux-amd64.tgz",
        {"./": b"", "./greptime": "#!/bin/sh\n"},
        modes={"./greptime": 0o755},
    )

    installed = install(package, tmp_path / "bin")

    assert installed == [tmp_path / "bin" / "greptime"]


def test_zip_package_installs(tmp_path: Path, scratch_root: Path) -> None:
    package = build_zip(
        tmp_path / "etcd-v3.5.7-darwin-amd64.zip",
        {"etcd-v3.5.7-darwin-amd64/etcd": "etcd", "etcd-v3.5.7-darwin-amd64/README.md": "docs"},
        modes={"etcd-v3.5.7-darwin-amd64/etcd": 0o755},
    )

    installed = install(package, tmp_path / "bin")

    assert [path.name for path in installed] == ["etcd"]


def test_existing_binary_is_replaced(tmp_path: Path, scratch_root: Path) -> None:
    install_dir = tmp_path / "bin"
    install_dir.mkdir()
    (install_dir / "greptime").write_text("old")
    package = build_tar_gz(
        tmp_path / "greptime-linux-amd64.tgz",
        {"greptime": "new"},
        modes={"greptime": 0o755},
    )

    install(package, install_dir)

    assert (install_dir / "greptime").read_text() == "new"


def test_package_without_executables_installs_nothing(tmp_path: Path, scratch_root: Path) -> None:
    package = build_tar_gz(tmp_path / "docs.tar.gz", {"README.md": "docs"})

    assert install(package, tmp_path / "bin") == []
    assert (tmp_path / "bin").is_dir()
    assert list(scratch_root.iterdir()) == []


def test_scratch_removed_on_failure(tmp_path: Path, scratch_root: Path) -> None:
    package = build_tar_gz(tmp_path / "evil.tar.gz", {"../escape": "x"})

    with pytest.raises(UnsupportedFormat):
        install(package, tmp_path / "bin")

    assert list(scratch_root.iterdir()) == []


def test_cancelled_before_move(tmp_path: Path, scratch_root: Path) -> None:
    package = build_tar_gz(tmp_path / "pkg.tgz", {"greptime": "bin"}, modes={"greptime": 0o755})
    token = CancellationToken()
    token.cancel()

    with pytest.raises(Cancelled):
        install(package, tmp_path / "bin", cancellation_token=token)

    assert not (tmp_path / "bin" / "greptime").exists()


def test_install_dir_blocked_by_file(tmp_path: Path) -> None:
    blocker = tmp_path / "bin"
    blocker.write_text("not a directory")
    package = build_tar_gz(tmp_path / "pkg.tgz", {"greptime": "bin"}, modes={"greptime": 0o755})

    with pytest.raises(ArtifactIOError):
        install(package, blocker)


def test_is_executable(tmp_path: Path) -> None:
    script = tmp_path / "script"
    script.write_text("#!/bin/sh\n")
    assert not is_executable(script)
    script.chmod(0o755)
    assert is_executable(script)
    assert not is_executable(tmp_path)
    assert not is_executable(tmp_path / "missing")
