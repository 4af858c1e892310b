"""Presentation helpers: sorting, display rows and list view states.

Nothing here talks to the network except :func:`load_view_state`, which
runs one fetch cycle and folds its outcome into a :data:`ViewState`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar, Iterable, Union

from lcovdash.badges import coverage_level
from lcovdash.config import SORT_DIRECTIONS, DashboardConfig
from lcovdash.loader import LoadError, ProjectLoader
from lcovdash.models import CoverageData, Project, ProjectMetadata

UNKNOWN = "unknown"

# ----------------------------
# Sorting
# ----------------------------


@dataclass(frozen=True, slots=True)
class SortState:
    field: str = "name"
    direction: str = "asc"

    @classmethod
    def from_query(
        cls, field: str | None, direction: str | None, dashboard: DashboardConfig
    ) -> SortState:
        """Validate query parameters, falling back to the configured default."""
        f = (field or "").strip().lower()
        d = (direction or "").strip().lower()
        if f not in dashboard.sort_fields:
            f = dashboard.default_sort
            if not d:
                d = dashboard.default_direction
        if d not in SORT_DIRECTIONS:
            d = "asc"
        return cls(field=f, direction=d)

    def toggle(self, field: str) -> SortState:
        """Clicking the active column flips direction; another column starts ascending."""
        if field == self.field:
            return SortState(field, "desc" if self.direction == "asc" else "asc")
        return SortState(field, "asc")

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def last_updated_ts(project: Project) -> float:
    """Epoch seconds of the last update; projects without one sort as 0."""
    md = project.metadata
    dt = parse_timestamp(md.last_updated if md else None)
    return dt.timestamp() if dt else 0.0


_SORT_KEYS = {
    "name": lambda p: (p.name.casefold(), p.name),
    "coverage": lambda p: p.coverage.percentage,
    "date": last_updated_ts,
}


def sort_projects(projects: Iterable[Project], state: SortState) -> list[Project]:
    """Sort for the list view.

    Ties keep their input order in both directions.
    """
    key = _SORT_KEYS.get(state.field)
    if key is None:
        raise ValueError(f"Unknown sort field: {state.field!r}")
    return sorted(projects, key=key, reverse=state.descending)


# ----------------------------
# Formatting
# ----------------------------


def format_percent(percent: float) -> str:
    return f"{percent:.1f}%"


def format_date(value: str | None) -> str:
    dt = parse_timestamp(value)
    if dt is None:
        return UNKNOWN
    return dt.strftime("%b %d, %Y, %I:%M:%S %p")


def short_commit(commit: str | None) -> str:
    return commit[:7] if commit else UNKNOWN


def source_url(metadata: ProjectMetadata | None, source_host_url: str) -> str | None:
    if metadata is None or not metadata.source_repo:
        return None
    return f"{source_host_url.rstrip('/')}/{metadata.source_repo.strip('/')}"


# ----------------------------
# Rows
# ----------------------------


@dataclass(frozen=True, slots=True)
class ProjectRow:
    name: str
    source_url: str | None
    percentage: float
    percent_text: str
    level: str
    total_hit: int
    total_lines: int
    last_updated: str


@dataclass(frozen=True, slots=True)
class FileRow:
    path: str
    lines_hit: int
    lines_total: int
    percentage: float
    percent_text: str
    level: str


def project_row(project: Project, source_host_url: str) -> ProjectRow:
    pct = project.coverage.percentage
    md = project.metadata
    return ProjectRow(
        name=project.name,
        source_url=source_url(md, source_host_url),
        percentage=pct,
        percent_text=format_percent(pct),
        level=coverage_level(pct),
        total_hit=project.coverage.total_hit,
        total_lines=project.coverage.total_lines,
        last_updated=format_date(md.last_updated if md else None),
    )


def file_rows(coverage: CoverageData) -> list[FileRow]:
    """Detail view rows, least covered first (files with no lines count as 0%)."""
    files = sorted(coverage.files, key=lambda f: f.percentage)
    return [
        FileRow(
            path=f.path,
            lines_hit=f.lines_hit,
            lines_total=f.lines_total,
            percentage=f.percentage,
            percent_text=format_percent(f.percentage),
            level=coverage_level(f.percentage),
        )
        for f in files
    ]


# ----------------------------
# View states
# ----------------------------


@dataclass(frozen=True, slots=True)
class Loading:
    kind: ClassVar[str] = "loading"


@dataclass(frozen=True, slots=True)
class LoadFailed:
    message: str
    kind: ClassVar[str] = "error"


@dataclass(frozen=True, slots=True)
class Empty:
    kind: ClassVar[str] = "empty"


@dataclass(frozen=True, slots=True)
class Populated:
    projects: tuple[Project, ...]
    kind: ClassVar[str] = "populated"


ViewState = Union[Loading, LoadFailed, Empty, Populated]


async def load_view_state(loader: ProjectLoader) -> ViewState:
    """Run one fetch cycle; only an index failure yields ``LoadFailed``."""
    try:
        projects = await loader.fetch_projects()
    except LoadError as exc:
        return LoadFailed(message=str(exc))
    if not projects:
        return Empty()
    return Populated(projects=tuple(projects))
