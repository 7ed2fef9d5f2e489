"""Semantic version comparison used for index ordering and package naming."""

from __future__ import annotations

import pytest

from Gtctl.Artifacts.errors import ParseError
from Gtctl.Artifacts.versioning import (
    compare,
    is_at_least,
    is_valid_version,
    parse_version,
    sort_versions_desc,
)


@pytest.mark.parametrize(
    ("v1", "v2", "expected"),
    [
        ("v0.3.2", "v0.4.0-nightly-20230802", False),
        ("v0.4.0-nightly-20230807", "0.4.0-nightly-20230802", True),
        ("v0.4.0", "v0.4.0-nightly-20230802", True),
        ("1.2.3", "1.2.3", False),
        ("v1.10.0", "v1.9.9", True),
    ],
)
def test_compare(v1: str, v2: str, expected: bool) -> None:
    assert compare(v1, v2) is expected


def test_leading_v_is_optional() -> None:
    assert parse_version("v1.2.3") == parse_version("1.2.3")


def test_partial_versions_default_missing_components() -> None:
    assert str(parse_version("v1.2")) == "1.2.0"
    assert compare("1.2.1", "1.2") is True


@pytest.mark.parametrize("bad", ["", "v", "not-a-version", "1.2.3.4", "latest"])
def test_parse_error_carries_value(bad: str) -> None:
    with pytest.raises(ParseError) as excinfo:
        compare(bad, "1.0.0")
    assert excinfo.value.value == bad
    assert not is_valid_version(bad)


def test_is_at_least_includes_threshold() -> None:
    threshold = "v0.4.0-nightly-20230802"
    assert is_at_least(threshold, threshold)
    assert is_at_least("v0.4.0", threshold)
    assert not is_at_least("v0.3.2", threshold)


def test_sort_versions_desc_orders_prereleases_before_release() -> None:
    ordered = sort_versions_desc(["0.1.0", "v0.2.0-alpha.1", "0.2.0", "0.1.10"])
    assert ordered == ["0.2.0", "v0.2.0-alpha.1", "0.1.10", "0.1.0"]
