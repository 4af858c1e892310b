from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse
from jinja2 import Environment, PackageLoader, select_autoescape

from lcovdash.badges import (
    badge_color,
    coverage_level,
    coverage_message,
    render_badge_svg,
    svg_response,
)
from lcovdash.config import ConfigManager
from lcovdash.loader import LoadError, ProjectLoader, build_index
from lcovdash.views import (
    Loading,
    SortState,
    file_rows,
    format_date,
    format_percent,
    load_view_state,
    project_row,
    short_commit,
    sort_projects,
    source_url,
)

logger = logging.getLogger(__name__)

_jinja_env = Environment(
    loader=PackageLoader("lcovdash", "templates"),
    autoescape=select_autoescape(["html"]),
)

# ----------------------------
# Configuration
# ----------------------------

BASE_DIR = Path(os.environ.get("LCOVDASH_HOME", ".")).resolve()

SORT_LABELS = {"name": "Project", "coverage": "Coverage", "date": "Last Updated"}

# Module-level state (populated during lifespan)
config_manager: ConfigManager | None = None
project_loader: ProjectLoader | None = None


def _resolve_config_path() -> Path:
    """Return the resolved TOML config file path.

    ``LCOVDASH_CONF`` may point to either a file or a directory.  When it
    is a directory we look for ``config.toml`` inside it.
    """
    raw = os.environ.get("LCOVDASH_CONF", "")
    if raw:
        p = Path(raw)
        if p.is_dir():
            return p / "config.toml"
        return p
    return BASE_DIR / "config.toml"


def load_config() -> ConfigManager:
    config_path = _resolve_config_path()
    if config_path.is_file():
        logger.info("Loading configuration from %s", config_path)
        return ConfigManager.from_file(config_path)
    logger.info("No config file at %s, using environment", config_path)
    return ConfigManager.from_env()


def _get_config() -> ConfigManager:
    global config_manager
    if config_manager is None:
        config_manager = load_config()
    return config_manager


def _get_loader() -> ProjectLoader:
    global project_loader
    if project_loader is None:
        cfg = _get_config()
        project_loader = ProjectLoader(
            build_index(cfg.index), timeout=cfg.http.timeout
        )
    return project_loader


# ----------------------------
# Lifespan (async startup)
# ----------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    global config_manager, project_loader

    config_manager = load_config()
    project_loader = ProjectLoader(
        build_index(config_manager.index), timeout=config_manager.http.timeout
    )
    logger.info("Project index: %s", project_loader.index.index_url)
    yield


# ----------------------------
# App setup
# ----------------------------

app = FastAPI(title="LCOV Coverage Dashboard", version="1.0", lifespan=lifespan)


@app.exception_handler(LoadError)
async def _load_error_response(request: Request, exc: LoadError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=502)


def _render(template_name: str, **context: Any) -> str:
    cfg = _get_config()
    template = _jinja_env.get_template(template_name)
    return template.render(title=cfg.dashboard.title, **context)


def sort_headers(state: SortState, fields: tuple[str, ...]) -> list[dict[str, Any]]:
    """Column headers for the list view, each linking to its next sort state."""
    headers = []
    for f in fields:
        nxt = state.toggle(f)
        headers.append(
            {
                "field": f,
                "label": SORT_LABELS[f],
                "active": f == state.field,
                "arrow": ("▼" if state.descending else "▲") if f == state.field else "",
                "query": f"sort={nxt.field}&dir={nxt.direction}",
            }
        )
    return headers


# ----------------------------
# Dashboards (HTML)
# ----------------------------


@app.get("/", response_class=HTMLResponse)
async def index(
    sort: str | None = None,
    direction: str | None = Query(default=None, alias="dir"),
) -> str:
    cfg = _get_config()
    state = SortState.from_query(sort, direction, cfg.dashboard)
    return _render(
        "index.html",
        state=Loading(),
        fragment_url=f"/fragments/projects?sort={state.field}&dir={state.direction}",
    )


@app.get("/fragments/projects", response_class=HTMLResponse)
async def projects_fragment(
    sort: str | None = None,
    direction: str | None = Query(default=None, alias="dir"),
) -> str:
    cfg = _get_config()
    sort_state = SortState.from_query(sort, direction, cfg.dashboard)
    view_state = await load_view_state(_get_loader())

    rows = []
    if view_state.kind == "populated":
        rows = [
            project_row(p, cfg.dashboard.source_host_url)
            for p in sort_projects(view_state.projects, sort_state)
        ]

    return _render(
        "_projects.html",
        state=view_state,
        rows=rows,
        headers=sort_headers(sort_state, cfg.dashboard.sort_fields),
    )


@app.get("/projects/{name}", response_class=HTMLResponse)
async def project_detail(name: str) -> str:
    cfg = _get_config()
    project = await _get_loader().fetch_project(name)
    if project is None:
        raise HTTPException(status_code=404, detail=f"No coverage for project {name!r}")

    md = project.metadata
    coverage = project.coverage
    return _render(
        "project.html",
        project=project,
        percent_text=format_percent(coverage.percentage),
        level=coverage_level(coverage.percentage),
        files=file_rows(coverage),
        metadata=md,
        source_url=source_url(md, cfg.dashboard.source_host_url),
        commit=short_commit(md.source_commit if md else None),
        updated=format_date(md.last_updated if md else None),
    )


# ----------------------------
# APIs
# ----------------------------


@app.get("/api/projects")
async def api_projects(
    sort: str | None = None,
    direction: str | None = Query(default=None, alias="dir"),
) -> JSONResponse:
    cfg = _get_config()
    state = SortState.from_query(sort, direction, cfg.dashboard)
    projects = await _get_loader().fetch_projects()
    return JSONResponse(
        {
            "sort": {"field": state.field, "direction": state.direction},
            "projects": [p.to_dict() for p in sort_projects(projects, state)],
        }
    )


@app.get("/api/projects/{name}")
async def api_project(name: str) -> JSONResponse:
    project = await _get_loader().fetch_project(name)
    if project is None:
        raise HTTPException(status_code=404, detail=f"No coverage for project {name!r}")
    return JSONResponse(project.to_dict(include_files=True))


@app.get("/badge/{name}")
async def badge_svg(
    request: Request, name: str, label: str = "coverage", decimals: int = 1
) -> Response:
    project = await _get_loader().fetch_project(name)

    percent = None if project is None else project.coverage.percentage
    msg = coverage_message(percent, decimals=max(0, min(int(decimals), 3)))
    color = badge_color(percent)
    svg = render_badge_svg(label=label, message=msg, color=color)

    # reports move with every upload: cache briefly
    return svg_response(
        svg,
        cache_control="public, max-age=60",
        if_none_match=request.headers.get("if-none-match"),
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
