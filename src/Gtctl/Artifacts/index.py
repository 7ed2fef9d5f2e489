"""Helm chart repository index parsing.

The GreptimeDB chart repository publishes a Helm ``index.yaml`` listing every
chart version with its download URLs.  Parsing mirrors what Helm itself does
when loading a repository index: entries that fail validation are dropped,
missing chart ``apiVersion`` values default to ``v1``, and each chart's
versions are re-sorted newest first so the first entry is the latest.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidIndex, NotFound
from .versioning import is_valid_version, parse_version

__all__ = ["ChartVersion", "IndexFile", "parse_index", "DEFAULT_CHART_API_VERSION"]

LOGGER = logging.getLogger("Gtctl.Artifacts.index")

DEFAULT_CHART_API_VERSION = "v1"


class ChartVersion(BaseModel):
    """A single chart release listed in a repository index."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(default="", alias="apiVersion")
    name: str
    version: str
    urls: List[str] = Field(default_factory=list)
    digest: Optional[str] = None
    app_version: Optional[str] = Field(default=None, alias="appVersion")

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, value: Any) -> Any:
        # YAML loads bare numbers such as 1.2 as floats.
        if isinstance(value, (int, float)):
            return str(value)
        return value

    def validate_entry(self) -> Optional[str]:
        """Return a reason the entry is unusable, or ``None`` when it is valid."""

        if not self.name:
            return "chart name is empty"
        if "/" in self.name or "\\" in self.name:
            return f"chart name {self.name!r} contains a path separator"
        if not is_valid_version(self.version):
            return f"version {self.version!r} is not a semantic version"
        if not self.urls:
            return "entry lists no download URLs"
        return None


class IndexFile(BaseModel):
    """Parsed chart repository index."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(alias="apiVersion")
    generated: Optional[Any] = None
    entries: Dict[str, List[ChartVersion]] = Field(default_factory=dict)

    def sort_entries(self) -> None:
        """Order each chart's versions from newest to oldest."""

        for name, versions in self.entries.items():
            self.entries[name] = sorted(
                versions, key=lambda entry: parse_version(entry.version), reverse=True
            )

    def latest(self, chart_name: str) -> ChartVersion:
        """Return the newest entry for ``chart_name``.

        Raises:
            NotFound: If the index lists no usable versions of the chart.
        """

        versions = self.entries.get(chart_name)
        if not versions:
            raise NotFound(f"chart {chart_name!r} not found in repository index")
        return versions[0]


def _load_entries(raw_entries: Any) -> Dict[str, List[ChartVersion]]:
    entries: Dict[str, List[ChartVersion]] = {}
    if not isinstance(raw_entries, dict):
        return entries
    for chart_name, raw_versions in raw_entries.items():
        kept: List[ChartVersion] = []
        for raw in raw_versions or []:
            if not isinstance(raw, dict):
                continue
            try:
                entry = ChartVersion.model_validate(raw)
            except ValidationError as exc:
                LOGGER.debug(
                    "dropping malformed index entry",
                    extra={"stage": "discover", "chart": chart_name, "error": str(exc)},
                )
                continue
            reason = entry.validate_entry()
            if reason is not None:
                LOGGER.debug(
                    "dropping invalid index entry",
                    extra={"stage": "discover", "chart": chart_name, "reason": reason},
                )
                continue
            if not entry.api_version:
                entry.api_version = DEFAULT_CHART_API_VERSION
            kept.append(entry)
        entries[str(chart_name)] = kept
    return entries


def parse_index(data: bytes) -> IndexFile:
    """Parse the bytes of a repository ``index.yaml``.

    Raises:
        InvalidIndex: If ``data`` is empty, not YAML, or lacks ``apiVersion``.
    """

    if not data or not data.strip():
        raise InvalidIndex("repository index is empty")
    try:
        document = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise InvalidIndex(f"repository index is not valid YAML: {exc}") from exc
    if not isinstance(document, dict):
        raise InvalidIndex("repository index must be a YAML mapping")
    if not document.get("apiVersion"):
        raise InvalidIndex("repository index has no apiVersion")

    index = IndexFile(
        apiVersion=str(document["apiVersion"]),
        generated=document.get("generated"),
        entries=_load_entries(document.get("entries")),
    )
    index.sort_entries()
    return index
