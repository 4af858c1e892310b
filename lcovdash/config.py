"""Declarative configuration manager for lcovdash.

Parses a TOML config file and provides:

* The project-index strategy and the locations it reads from
  (a GitHub contents listing or a flat ``projects.json`` manifest).
* Dashboard presentation settings (title, default sort, sortable fields).
* HTTP client settings.

The config file is the **single source of truth** when present.
Environment variables are honoured as a fallback when no config file
is found.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

INDEX_TYPES = ("github", "manifest")
SORT_FIELDS = ("name", "coverage", "date")
SORT_DIRECTIONS = ("asc", "desc")

DEFAULT_SOURCE_HOST_URL = "https://github.com"

# ------------------------------------------------------------------
# Data classes
# ------------------------------------------------------------------


@dataclass(frozen=True)
class IndexConfig:
    """Where the project index and the per-project files live.

    ``type`` selects the index strategy (``"github"`` or ``"manifest"``).
    """

    type: str = "manifest"
    coverage_file: str = "lcov.info"
    metadata_file: str = "metadata.json"

    # manifest
    base_url: str = ""
    manifest: str = "projects.json"

    # github
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    projects_path: str = "projects"
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"


@dataclass(frozen=True)
class DashboardConfig:
    title: str = "Test Coverage"
    default_sort: str = "name"
    default_direction: str = "asc"
    sort_fields: tuple[str, ...] = SORT_FIELDS
    source_host_url: str = DEFAULT_SOURCE_HOST_URL


@dataclass(frozen=True)
class HttpConfig:
    timeout: float = 10.0


# ------------------------------------------------------------------
# ConfigManager
# ------------------------------------------------------------------


class ConfigManager:
    """Manages the declarative TOML configuration for lcovdash.

    Typical usage::

        cfg = ConfigManager.from_file(Path("config.toml"))
        index = build_index(cfg.index)
    """

    def __init__(
        self,
        index: IndexConfig,
        dashboard: DashboardConfig | None = None,
        http: HttpConfig | None = None,
    ) -> None:
        self._index = index
        self._dashboard = dashboard or DashboardConfig()
        self._http = http or HttpConfig()

    # -------------------------------------------------------------- factories

    @classmethod
    def from_file(cls, path: Path) -> ConfigManager:
        """Load configuration from a TOML file."""
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        return cls._from_dict(raw)

    @classmethod
    def from_str(cls, toml_str: str) -> ConfigManager:
        """Load configuration from a TOML string (handy for tests)."""
        raw = tomllib.loads(toml_str)
        return cls._from_dict(raw)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ConfigManager:
        """Build configuration from environment variables.

        Environment variables
        ---------------------
        LCOVDASH_INDEX          : "manifest" (default) or "github"
        LCOVDASH_BASE_URL       : manifest mode, base URL of the static host
        LCOVDASH_MANIFEST       : manifest mode, index file name  (default: projects.json)
        LCOVDASH_GITHUB_OWNER   : github mode, repository owner
        LCOVDASH_GITHUB_REPO    : github mode, repository name
        LCOVDASH_GITHUB_BRANCH  : github mode, branch  (default: main)
        LCOVDASH_PROJECTS_PATH  : github mode, folder holding projects  (default: projects)
        LCOVDASH_TITLE          : dashboard heading
        LCOVDASH_TIMEOUT        : HTTP timeout in seconds  (default: 10)
        """
        env = os.environ if environ is None else environ

        index: dict[str, Any] = {"type": env.get("LCOVDASH_INDEX", "manifest")}
        for key, var in (
            ("base_url", "LCOVDASH_BASE_URL"),
            ("manifest", "LCOVDASH_MANIFEST"),
            ("owner", "LCOVDASH_GITHUB_OWNER"),
            ("repo", "LCOVDASH_GITHUB_REPO"),
            ("branch", "LCOVDASH_GITHUB_BRANCH"),
            ("projects_path", "LCOVDASH_PROJECTS_PATH"),
        ):
            if env.get(var):
                index[key] = env[var]

        raw: dict[str, Any] = {"index": index}
        if env.get("LCOVDASH_TITLE"):
            raw["dashboard"] = {"title": env["LCOVDASH_TITLE"]}
        if env.get("LCOVDASH_TIMEOUT"):
            raw["http"] = {"timeout": env["LCOVDASH_TIMEOUT"]}
        return cls._from_dict(raw)

    @classmethod
    def default(cls) -> ConfigManager:
        """Return the built-in defaults: a manifest index with no host yet."""
        return cls(IndexConfig())

    @classmethod
    def _from_dict(cls, raw: dict[str, Any]) -> ConfigManager:
        """Build a ``ConfigManager`` from a parsed TOML dictionary."""
        return cls(
            index=_parse_index(raw.get("index", {})),
            dashboard=_parse_dashboard(raw.get("dashboard", {})),
            http=HttpConfig(timeout=float(raw.get("http", {}).get("timeout", 10.0))),
        )

    # -------------------------------------------------------------- accessors

    @property
    def index(self) -> IndexConfig:
        return self._index

    @property
    def dashboard(self) -> DashboardConfig:
        return self._dashboard

    @property
    def http(self) -> HttpConfig:
        return self._http


# ------------------------------------------------------------------
# Section parsers
# ------------------------------------------------------------------


def _parse_index(data: dict[str, Any]) -> IndexConfig:
    itype = str(data.get("type", "manifest")).strip().lower()
    if itype not in INDEX_TYPES:
        raise ValueError(
            f"Unknown index type {itype!r}; expected one of {', '.join(INDEX_TYPES)}"
        )

    defaults = IndexConfig()

    def _get(key: str) -> str:
        value = data.get(key)
        if value is None or not str(value).strip():
            return getattr(defaults, key)
        return str(value).strip()

    cfg = IndexConfig(
        type=itype,
        coverage_file=_get("coverage_file"),
        metadata_file=_get("metadata_file"),
        base_url=_get("base_url").rstrip("/"),
        manifest=_get("manifest").strip("/"),
        owner=_get("owner"),
        repo=_get("repo"),
        branch=_get("branch"),
        projects_path=_get("projects_path").strip("/"),
        api_url=_get("api_url").rstrip("/"),
        raw_url=_get("raw_url").rstrip("/"),
    )

    if itype == "github":
        if not cfg.owner:
            raise ValueError("GitHub index missing required 'owner' field")
        if not cfg.repo:
            raise ValueError("GitHub index missing required 'repo' field")
    elif not cfg.base_url:
        raise ValueError("Manifest index missing required 'base_url' field")

    return cfg


def _parse_dashboard(data: dict[str, Any]) -> DashboardConfig:
    fields_raw = data.get("sort_fields", list(SORT_FIELDS))
    if isinstance(fields_raw, str):
        fields_raw = [fields_raw]
    sort_fields = tuple(str(f).strip().lower() for f in fields_raw)
    if not sort_fields:
        raise ValueError("dashboard.sort_fields must list at least one field")
    for f in sort_fields:
        if f not in SORT_FIELDS:
            raise ValueError(f"Unknown sort field {f!r}")

    default_sort = str(data.get("default_sort", sort_fields[0])).strip().lower()
    if default_sort not in sort_fields:
        raise ValueError(
            f"dashboard.default_sort {default_sort!r} is not one of the sort_fields"
        )

    direction = str(data.get("default_direction", "asc")).strip().lower()
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"Unknown sort direction {direction!r}")

    return DashboardConfig(
        title=str(data.get("title", "Test Coverage")),
        default_sort=default_sort,
        default_direction=direction,
        sort_fields=sort_fields,
        source_host_url=str(
            data.get("source_host_url", DEFAULT_SOURCE_HOST_URL)
        ).rstrip("/"),
    )
