# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for the artifact suite",
#   "sections": [
#     {"id": "paths", "name": "sys.path management", "anchor": "PATH", "kind": "setup"},
#     {"id": "upstream", "name": "MockUpstream", "anchor": "class-mock-upstream", "kind": "class"},
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixture"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Adds ``src`` to ``sys.path`` and provides hermetic fixtures: a routed
``httpx.MockTransport`` standing in for every upstream (chart index, regional
bucket, GitHub, OCI registry), a linux/amd64 configuration, and a cache
rooted in ``tmp_path``.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Tuple, Union

import httpx
import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from Gtctl.Artifacts.cache import ArtifactCache  # noqa: E402
from Gtctl.Artifacts.settings import (  # noqa: E402
    PlatformSettings,
    ResolvedConfig,
    invalidate_default_config_cache,
)
from Gtctl.Artifacts.testing import use_mock_http_client  # noqa: E402

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class MockUpstream:
    """Route table mapping exact URLs to canned responses, recording requests."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def register(
        self,
        url: str,
        status_code: int = 200,
        content: Union[bytes, str] = b"",
        *,
        method: str = "GET",
        headers: Union[Dict[str, str], None] = None,
    ) -> None:
        body = content.encode("utf-8") if isinstance(content, str) else content
        self.routes[(method, url)] = httpx.Response(
            status_code, content=body, headers=headers or {}
        )

    def register_json(self, url: str, payload: Any, status_code: int = 200) -> None:
        self.register(
            url,
            status_code,
            json.dumps(payload),
            headers={"content-type": "application/json"},
        )

    def register_handler(self, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[("GET", url)] = handler

    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url))
        route = self.routes.get(key)
        if route is None:
            route = self.routes.get((request.method, str(request.url).split("?", 1)[0]))
        if route is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(route, httpx.Response):
            return httpx.Response(
                route.status_code, content=route.content, headers=route.headers
            )
        return route(request)


# --- Fixtures ---


@pytest.fixture(autouse=True)
def _isolate_default_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop ``GTCTL_*`` variables and the memoised default configuration."""

    for name in list(os.environ):
        if name.upper().startswith("GTCTL_"):
            monkeypatch.delenv(name, raising=False)
    invalidate_default_config_cache()
    yield
    invalidate_default_config_cache()


@pytest.fixture
def upstream() -> Generator[MockUpstream, None, None]:
    """Install a :class:`MockUpstream` as the shared HTTP client transport."""

    routes = MockUpstream()
    with use_mock_http_client(httpx.MockTransport(routes)):
        yield routes


@pytest.fixture
def linux_config(tmp_path: Path) -> ResolvedConfig:
    """Configuration targeting linux/amd64 with the working tree under ``tmp_path``."""

    return ResolvedConfig(
        platform=PlatformSettings(os="linux", arch="amd64"),
        home_dir=tmp_path / "home",
    )


@pytest.fixture
def cache(tmp_path: Path) -> ArtifactCache:
    return ArtifactCache(tmp_path / ".gtctl")
