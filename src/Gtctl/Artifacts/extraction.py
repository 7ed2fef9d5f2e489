"""Archive extraction for downloaded binary packages.

Release packages arrive either as ``.zip`` (etcd on macOS) or gzip-compressed
tarballs (``.tar.gz``/``.tgz``).  Extraction recreates the directory tree and
keeps the permission bits recorded in the archive so that executables stay
executable.  Member paths are validated to stay inside the destination and an
optional expansion ratio guard rejects archive bombs.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from .errors import ArtifactIOError, UnsupportedFormat

__all__ = [
    "ZIP_SUFFIXES",
    "TAR_GZ_SUFFIXES",
    "extract",
    "extract_zip",
    "extract_tar_gz",
]

ZIP_SUFFIXES = (".zip",)
TAR_GZ_SUFFIXES = (".tar.gz", ".tgz", ".gz")


def _validate_member_path(member_name: str) -> Optional[Path]:
    """Validate archive member paths to prevent traversal attacks.

    Returns ``None`` for entries naming the archive root itself, such as the
    ``./`` entry written by ``tar -C dir -czf pkg.tgz .``.
    """

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise UnsupportedFormat(f"unsafe absolute path in archive: {member_name}")
    parts = [part for part in relative.parts if part not in {"", "."}]
    if ".." in parts:
        raise UnsupportedFormat(f"unsafe path in archive: {member_name}")
    if not parts:
        return None
    return Path(*parts)


def _check_compression_ratio(
    *,
    total_uncompressed: int,
    compressed_size: int,
    archive: Path,
    limit: Optional[float],
    logger: Optional[logging.Logger],
) -> None:
    if limit is None or compressed_size <= 0:
        return
    ratio = total_uncompressed / float(compressed_size)
    if ratio > limit:
        if logger:
            logger.error(
                "archive compression ratio too high",
                extra={
                    "stage": "extract",
                    "archive": str(archive),
                    "ratio": round(ratio, 2),
                    "limit": limit,
                },
            )
        raise UnsupportedFormat(
            f"archive {archive} expands to {total_uncompressed} bytes, "
            f"exceeding {limit}:1 compression ratio"
        )


def _apply_mode(path: Path, mode: int) -> None:
    permissions = stat.S_IMODE(mode)
    if permissions:
        os.chmod(path, permissions)


def extract_zip(
    zip_path: Path,
    destination: Path,
    *,
    max_compression_ratio: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Extract a ZIP archive, restoring Unix permission bits where recorded."""

    destination.mkdir(parents=True, exist_ok=True)
    extracted: List[Path] = []
    with zipfile.ZipFile(zip_path) as archive:
        members = archive.infolist()
        safe_members: List[Tuple[zipfile.ZipInfo, Path, int]] = []
        total_uncompressed = 0
        for member in members:
            member_path = _validate_member_path(member.filename)
            if member_path is None:
                continue
            mode = (member.external_attr >> 16) & 0xFFFF
            if stat.S_ISLNK(mode):
                if logger:
                    logger.debug(
                        "skipping symlink archive member",
                        extra={"stage": "extract", "member": member.filename},
                    )
                continue
            if not member.is_dir():
                total_uncompressed += int(member.file_size)
            safe_members.append((member, member_path, mode))
        _check_compression_ratio(
            total_uncompressed=total_uncompressed,
            compressed_size=zip_path.stat().st_size,
            archive=zip_path,
            limit=max_compression_ratio,
            logger=logger,
        )
        for member, member_path, mode in safe_members:
            target_path = destination / member_path
            if member.is_dir():
                target_path.mkdir(parents=True, exist_ok=True)
                continue
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member, "r") as source, target_path.open("wb") as target:
                shutil.copyfileobj(source, target)
            _apply_mode(target_path, mode)
            extracted.append(target_path)
    return extracted


def extract_tar_gz(
    tar_path: Path,
    destination: Path,
    *,
    max_compression_ratio: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Extract a gzip-compressed tarball, restoring member permission bits."""

    destination.mkdir(parents=True, exist_ok=True)
    extracted: List[Path] = []
    with tarfile.open(tar_path, mode="r:gz") as archive:
        members = archive.getmembers()
        safe_members: List[Tuple[tarfile.TarInfo, Path]] = []
        total_uncompressed = 0
        for member in members:
            member_path = _validate_member_path(member.name)
            if member_path is None:
                continue
            if member.isdir():
                safe_members.append((member, member_path))
                continue
            if not member.isfile():
                # Links, devices and FIFOs are never part of a release package.
                if logger:
                    logger.debug(
                        "skipping non-regular archive member",
                        extra={"stage": "extract", "member": member.name},
                    )
                continue
            total_uncompressed += int(member.size)
            safe_members.append((member, member_path))
        _check_compression_ratio(
            total_uncompressed=total_uncompressed,
            compressed_size=tar_path.stat().st_size,
            archive=tar_path,
            limit=max_compression_ratio,
            logger=logger,
        )
        for member, member_path in safe_members:
            target_path = destination / member_path
            if member.isdir():
                target_path.mkdir(parents=True, exist_ok=True)
                continue
            target_path.parent.mkdir(parents=True, exist_ok=True)
            extracted_file = archive.extractfile(member)
            if extracted_file is None:
                raise ArtifactIOError(f"failed to read archive member {member.name}")
            with extracted_file as source, target_path.open("wb") as target:
                shutil.copyfileobj(source, target)
            _apply_mode(target_path, member.mode)
            extracted.append(target_path)
    return extracted


def extract(
    archive_path: Path,
    destination: Path,
    *,
    max_compression_ratio: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Unpack ``archive_path`` into ``destination`` based on its file extension.

    Args:
        archive_path: ``.zip``, ``.tar.gz``, ``.tgz`` or ``.gz`` package.
        destination: Directory receiving the extracted tree; created if needed.
        max_compression_ratio: Largest accepted uncompressed/compressed ratio;
            ``None`` disables the check.
        logger: Optional logger for structured extraction events.

    Returns:
        Paths of the regular files that were written.

    Raises:
        UnsupportedFormat: For unknown extensions, unsafe member paths, or
            archives that expand beyond ``max_compression_ratio``.
        ArtifactIOError: When the archive cannot be read or files cannot be
            written.  Partially extracted files are left in place.
    """

    archive_path = Path(archive_path)
    destination = Path(destination)
    lower_name = archive_path.name.lower()
    if lower_name.endswith(ZIP_SUFFIXES):
        handler = extract_zip
    elif lower_name.endswith(TAR_GZ_SUFFIXES):
        handler = extract_tar_gz
    else:
        raise UnsupportedFormat(f"unsupported archive format: {archive_path.name}")

    try:
        extracted = handler(
            archive_path,
            destination,
            max_compression_ratio=max_compression_ratio,
            logger=logger,
        )
    except (zipfile.BadZipFile, tarfile.TarError, EOFError) as exc:
        raise ArtifactIOError(f"failed to read archive {archive_path}: {exc}") from exc
    except OSError as exc:
        raise ArtifactIOError(f"failed to extract {archive_path}: {exc}") from exc

    if logger:
        logger.info(
            "extracted archive",
            extra={"stage": "extract", "archive": str(archive_path), "files": len(extracted)},
        )
    return extracted
