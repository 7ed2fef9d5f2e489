"""Semantic version parsing and ordering for artifact version strings.

Release tags in the GreptimeDB ecosystem are written both with and without a
leading ``v`` (``v0.4.0-nightly-20230802`` vs ``0.4.0``) and chart indexes may
list partial versions such as ``1.2``.  The helpers below normalise those
forms onto :class:`semver.Version` so that ordering follows semantic-version
precedence, including pre-release identifiers.
"""

from __future__ import annotations

from typing import Iterable, List

import semver

from .errors import ParseError

__all__ = ["parse_version", "compare", "is_at_least", "is_valid_version", "sort_versions_desc"]


def parse_version(text: str) -> semver.Version:
    """Parse ``text`` into a :class:`semver.Version`.

    A single leading ``v`` is accepted and missing minor or patch components
    default to zero.

    Raises:
        ParseError: If ``text`` is empty or not a semantic version.

    Examples:
        >>> str(parse_version("v1.2"))
        '1.2.0'
    """

    candidate = (text or "").strip()
    if candidate[:1] in {"v", "V"}:
        candidate = candidate[1:]
    if not candidate:
        raise ParseError(f"invalid semantic version {text!r}", value=text)
    try:
        return semver.Version.parse(candidate, optional_minor_and_patch=True)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"invalid semantic version {text!r}: {exc}", value=text) from exc


def compare(v1: str, v2: str) -> bool:
    """Return True iff ``v1`` is strictly greater than ``v2``.

    Examples:
        >>> compare("v0.4.0-nightly-20230807", "0.4.0-nightly-20230802")
        True
        >>> compare("v0.3.2", "v0.4.0-nightly-20230802")
        False
    """

    return parse_version(v1).compare(parse_version(v2)) > 0


def is_at_least(version: str, threshold: str) -> bool:
    """Return True when ``version`` is greater than or equal to ``threshold``."""

    return parse_version(version).compare(parse_version(threshold)) >= 0


def is_valid_version(text: str) -> bool:
    try:
        parse_version(text)
    except ParseError:
        return False
    return True


def sort_versions_desc(versions: Iterable[str]) -> List[str]:
    """Return ``versions`` ordered from newest to oldest."""

    return sorted(versions, key=parse_version, reverse=True)
