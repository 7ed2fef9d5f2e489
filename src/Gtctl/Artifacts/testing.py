"""Test helpers for exercising the artifact core without real network access."""

from __future__ import annotations

import contextlib
import io
import tarfile
import zipfile
from pathlib import Path
from typing import Iterator, Mapping, Optional, Union

import httpx

from .net import configure_http_client, reset_http_client

__all__ = ["use_mock_http_client", "build_tar_gz", "build_zip"]

ArchiveMember = Union[bytes, str]


@contextlib.contextmanager
def use_mock_http_client(transport: httpx.BaseTransport, **client_kwargs) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    default_settings = client_kwargs.pop("default_settings", None)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, default_settings=default_settings)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


def _member_bytes(content: ArchiveMember) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


def build_tar_gz(
    path: Path,
    members: Mapping[str, ArchiveMember],
    modes: Optional[Mapping[str, int]] = None,
) -> Path:
    """Write a gzip tarball at ``path``; names ending in ``/`` become directories."""

    modes = modes or {}
    with tarfile.open(path, "w:gz") as archive:
        for name, content in members.items():
            info = tarfile.TarInfo(name.rstrip("/"))
            if name.endswith("/"):
                info.type = tarfile.DIRTYPE
                info.mode = modes.get(name, 0o755)
                archive.addfile(info)
                continue
            data = _member_bytes(content)
            info.size = len(data)
            info.mode = modes.get(name, 0o644)
            archive.addfile(info, io.BytesIO(data))
    return path


def build_zip(
    path: Path,
    members: Mapping[str, ArchiveMember],
    modes: Optional[Mapping[str, int]] = None,
) -> Path:
    """Write a ZIP archive at ``path`` recording Unix permission bits."""

    modes = modes or {}
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in members.items():
            info = zipfile.ZipInfo(name)
            file_type = 0o040000 if name.endswith("/") else 0o100000
            info.external_attr = (file_type | modes.get(name, 0o644)) << 16
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, _member_bytes(content))
    return path
