"""Artifact types, resolved sources, and the package facade."""

from __future__ import annotations

import pytest

import Gtctl.Artifacts as artifacts
from Gtctl.Artifacts.errors import ConfigError, UnknownType
from Gtctl.Artifacts.models import ArtifactType, Source, is_latest


@pytest.mark.parametrize("raw", ["chart", "CHART", " binary ", ArtifactType.BINARY])
def test_artifact_type_parse(raw) -> None:
    assert ArtifactType.parse(raw) in {ArtifactType.CHART, ArtifactType.BINARY}


def test_artifact_type_rejects_unknown() -> None:
    with pytest.raises(UnknownType):
        ArtifactType.parse("plugin")


@pytest.mark.parametrize(("version", "expected"), [("latest", True), ("", True), (None, True), ("v0.4.1", False)])
def test_is_latest(version, expected: bool) -> None:
    assert is_latest(version) is expected


@pytest.mark.parametrize("version", ["latest", ""])
def test_source_requires_concrete_version(version: str) -> None:
    with pytest.raises(ConfigError):
        Source(name="greptimedb", version=version, type=ArtifactType.CHART, file_name="x.tgz", url="https://x")


def test_source_properties() -> None:
    source = Source(
        name="etcd",
        version="9.2.0",
        type=ArtifactType.CHART,
        file_name="etcd-9.2.0.tgz",
        url="oci://registry-1.docker.io/bitnamicharts/etcd",
    )
    assert source.is_oci
    assert source.cache_key == (ArtifactType.CHART, "etcd", "9.2.0")
    with pytest.raises(AttributeError):
        source.version = "9.2.1"  # type: ignore[misc]


def test_facade_exports_lazily() -> None:
    assert artifacts.Source is Source
    assert artifacts.compare("v0.4.1", "v0.4.0")
    assert "ArtifactManager" in dir(artifacts)
    with pytest.raises(AttributeError):
        artifacts.does_not_exist  # noqa: B018
