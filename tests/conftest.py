"""Shared fixtures for the lcovdash test suite."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lcovdash.config import ConfigManager
from lcovdash.loader import ProjectLoader, build_index

# ---------------------------------------------------------------------------
# Sample LCOV + metadata
# ---------------------------------------------------------------------------

SAMPLE_LCOV = """\
TN:
SF:src/app.ts
FN:1,main
DA:1,1
DA:2,1
DA:3,0
DA:4,5
LF:4
LH:3
end_of_record
SF:src/util.ts
DA:1,0
DA:2,0
end_of_record
"""

SAMPLE_METADATA = {
    "project": "alpha",
    "lastUpdated": "2026-10-01T12:30:45Z",
    "sourceRepo": "acme/alpha",
    "sourceCommit": "0123456789abcdef0123456789abcdef01234567",
    "sourceBranch": "main",
    "workflowRun": "987654",
}

BASE_URL = "https://cov.example.com"

MANIFEST_TOML = f"""\
[index]
type = "manifest"
base_url = "{BASE_URL}"

[dashboard]
title = "Acme Coverage"
"""


def lcov_for(hit: int, total: int, path: str = "src/x.ts") -> str:
    """LCOV text with exactly *hit* of *total* lines covered."""
    lines = [f"SF:{path}"]
    for n in range(1, total + 1):
        lines.append(f"DA:{n},{1 if n <= hit else 0}")
    lines.append("end_of_record")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Fake remote host (httpx.MockTransport)
# ---------------------------------------------------------------------------


class FakeRemote:
    """Routes ``str(url)`` to ``(status, body)`` or ``"error"``.

    Unknown URLs answer 404.  Every request is recorded in ``requests``.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="Not Found")
        if route == "error":
            raise httpx.ConnectError("connection refused", request=request)
        status, body = route
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def requested(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]


def manifest_remote(projects: dict[str, dict[str, Any]]) -> FakeRemote:
    """Build a manifest-style remote.

    *projects* maps name -> {"lcov": route | None, "metadata": route | None}.
    """
    routes: dict[str, Any] = {f"{BASE_URL}/projects.json": (200, list(projects))}
    for name, files in projects.items():
        base = f"{BASE_URL}/{quote(name, safe='')}"
        if files.get("lcov") is not None:
            routes[f"{base}/lcov.info"] = files["lcov"]
        if files.get("metadata") is not None:
            routes[f"{base}/metadata.json"] = files["metadata"]
    return FakeRemote(routes)


@pytest.fixture()
def manifest_config() -> ConfigManager:
    return ConfigManager.from_str(MANIFEST_TOML)


@pytest.fixture()
def remote() -> FakeRemote:
    return manifest_remote(
        {
            "alpha": {"lcov": (200, SAMPLE_LCOV), "metadata": (200, SAMPLE_METADATA)},
            "beta": {"lcov": (200, lcov_for(9, 10))},
            "gamma": {"lcov": (404, "Not Found")},
        }
    )


@pytest_asyncio.fixture()
async def loader(remote: FakeRemote, manifest_config: ConfigManager):
    async with remote.client() as http:
        yield ProjectLoader(build_index(manifest_config.index), client=http)


# ---------------------------------------------------------------------------
# Async HTTP test client (uses the real FastAPI app)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def client(loader: ProjectLoader, manifest_config: ConfigManager):
    """Async httpx client wired to the FastAPI app (no lifespan)."""
    import main as app_module

    orig_config = app_module.config_manager
    orig_loader = app_module.project_loader
    app_module.config_manager = manifest_config
    app_module.project_loader = loader

    transport = ASGITransport(app=app_module.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app_module.config_manager = orig_config
    app_module.project_loader = orig_loader
