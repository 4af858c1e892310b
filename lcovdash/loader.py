"""Project discovery and report fetching.

A fetch cycle has two stages:

1. Ask the configured :class:`ProjectIndex` which projects exist.  Any
   failure here aborts the whole cycle with :class:`LoadError`.
2. Fetch every project's LCOV report (and metadata) concurrently.  A
   project whose report cannot be fetched is left out of the result; a
   project whose metadata cannot be fetched keeps ``metadata=None``.

The only side effects are outbound HTTP GETs.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import quote

import httpx

from lcovdash.config import IndexConfig
from lcovdash.lcov import parse_lcov
from lcovdash.models import Project, ProjectMetadata

logger = logging.getLogger(__name__)

# path separators and control characters never appear in a project name
_BAD_NAME_RE = re.compile(r"[/\\\x00-\x1f\x7f]")

_NO_CACHE = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


class LoadError(Exception):
    """Raised when the project index itself cannot be loaded."""


def is_valid_project_name(name: str) -> bool:
    """Names become one URL path segment on the remote host and on this app."""
    if not name or name in (".", ".."):
        return False
    return _BAD_NAME_RE.search(name) is None


# ------------------------------------------------------------------
# Index strategies
# ------------------------------------------------------------------


class ProjectIndex(ABC):
    """Knows how to list projects and where each project's files live.

    Adding a new index source means adding one subclass; the loader
    does not change.
    """

    def __init__(self, config: IndexConfig) -> None:
        self._config = config

    @property
    @abstractmethod
    def index_url(self) -> str:
        """URL of the listing / manifest document."""
        ...

    @abstractmethod
    def project_names_from(self, data: Any) -> list[str]:
        """Extract project names from the decoded index document.

        Raises ``LoadError`` when the document has the wrong shape.
        """
        ...

    @abstractmethod
    def project_base_url(self, name: str) -> str:
        """Base URL under which *name*'s report files live."""
        ...

    @property
    def index_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def coverage_url(self, name: str) -> str:
        return f"{self.project_base_url(name)}/{self._config.coverage_file}"

    def metadata_url(self, name: str) -> str:
        return f"{self.project_base_url(name)}/{self._config.metadata_file}"


class ManifestIndex(ProjectIndex):
    """Flat JSON array of project names at ``<base_url>/<manifest>``."""

    @property
    def index_url(self) -> str:
        return f"{self._config.base_url}/{self._config.manifest}"

    def project_names_from(self, data: Any) -> list[str]:
        if not isinstance(data, list):
            raise LoadError("Project manifest must be a JSON array of names")
        return [n.strip() for n in data if isinstance(n, str) and n.strip()]

    def project_base_url(self, name: str) -> str:
        return f"{self._config.base_url}/{quote(name, safe='')}"


class GitHubContentsIndex(ProjectIndex):
    """Directory listing from the GitHub contents API.

    Every ``type == "dir"`` entry under ``projects_path`` is a project;
    report files are read from the raw content host on the same branch.
    """

    @property
    def index_url(self) -> str:
        c = self._config
        return (
            f"{c.api_url}/repos/{c.owner}/{c.repo}/contents/{c.projects_path}"
            f"?ref={quote(c.branch, safe='')}"
        )

    @property
    def index_headers(self) -> dict[str, str]:
        return {"Accept": "application/vnd.github+json"}

    def project_names_from(self, data: Any) -> list[str]:
        if not isinstance(data, list):
            raise LoadError("GitHub contents listing must be a JSON array")
        names: list[str] = []
        for item in data:
            if not isinstance(item, dict) or item.get("type") != "dir":
                continue
            name = item.get("name")
            if isinstance(name, str) and name:
                names.append(name)
        return names

    def project_base_url(self, name: str) -> str:
        c = self._config
        return (
            f"{c.raw_url}/{c.owner}/{c.repo}/{c.branch}/"
            f"{c.projects_path}/{quote(name, safe='')}"
        )


def build_index(config: IndexConfig) -> ProjectIndex:
    if config.type == "github":
        return GitHubContentsIndex(config)
    if config.type == "manifest":
        return ManifestIndex(config)
    raise ValueError(f"Unknown index type: {config.type!r}")


# ------------------------------------------------------------------
# Loader
# ------------------------------------------------------------------


class ProjectLoader:
    """Assembles :class:`Project` records from a remote index.

    Pass *client* to share a long-lived ``httpx.AsyncClient`` (or a mock
    transport in tests); otherwise a client is opened per fetch cycle.
    """

    def __init__(
        self,
        index: ProjectIndex,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._index = index
        self._client = client
        self._timeout = timeout

    @property
    def index(self) -> ProjectIndex:
        return self._index

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            timeout=self._timeout, follow_redirects=True
        ) as client:
            yield client

    # -------------------------------------------------------------- public

    async def fetch_projects(self) -> list[Project]:
        """Load every project listed by the index.

        Order follows completion of the concurrent fetches and is not
        meaningful; callers sort for display.
        """
        async with self._http() as client:
            names = await self._project_names(client)
            results = await asyncio.gather(
                *(self._load_project(client, name) for name in names)
            )

        projects = [p for p in results if p is not None]
        logger.info(
            "Loaded %d of %d projects from %s",
            len(projects),
            len(names),
            self._index.index_url,
        )
        return projects

    async def fetch_project(self, name: str) -> Project | None:
        """Load a single project by name, or ``None`` if it has no report."""
        if not is_valid_project_name(name):
            return None
        async with self._http() as client:
            return await self._load_project(client, name)

    # -------------------------------------------------------------- internal

    async def _project_names(self, client: httpx.AsyncClient) -> list[str]:
        url = self._index.index_url
        logger.debug("Fetching project index %s", url)
        try:
            resp = await client.get(url, headers=self._index.index_headers)
        except httpx.HTTPError as exc:
            logger.error("Project index fetch failed for %s: %s", url, exc)
            raise LoadError(f"Failed to fetch projects: {exc}") from exc

        if not resp.is_success:
            logger.error("Project index %s returned %d", url, resp.status_code)
            raise LoadError(f"Failed to fetch projects: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise LoadError(f"Project index is not valid JSON: {exc}") from exc

        names = []
        for name in self._index.project_names_from(data):
            if is_valid_project_name(name):
                names.append(name)
            else:
                logger.warning("Ignoring invalid project name %r in %s", name, url)
        # names are unique keys; keep first occurrence
        return list(dict.fromkeys(names))

    async def _load_project(
        self, client: httpx.AsyncClient, name: str
    ) -> Project | None:
        url = self._index.coverage_url(name)
        try:
            resp = await client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Skipping %s: coverage fetch failed: %s", name, exc)
            return None

        if not resp.is_success:
            logger.warning(
                "Skipping %s: coverage fetch returned %d", name, resp.status_code
            )
            return None

        coverage = parse_lcov(resp.text)
        metadata = await self._load_metadata(client, name)
        return Project(name=name, coverage=coverage, metadata=metadata)

    async def _load_metadata(
        self, client: httpx.AsyncClient, name: str
    ) -> ProjectMetadata | None:
        url = self._index.metadata_url(name)
        try:
            resp = await client.get(url, headers=_NO_CACHE)
        except httpx.HTTPError as exc:
            logger.warning("Metadata fetch failed for %s: %s", name, exc)
            return None

        if not resp.is_success:
            logger.info("No metadata for %s (status %d)", name, resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.warning("Metadata for %s is not valid JSON", name)
            return None

        metadata = ProjectMetadata.from_dict(data)
        if metadata is None:
            logger.warning("Metadata for %s is not a JSON object", name)
        return metadata
