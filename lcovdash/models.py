"""Coverage data model for lcovdash."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class FileCoverage:
    path: str
    lines_hit: int = 0
    lines_total: int = 0
    lines: dict[int, int] = field(default_factory=dict)

    @property
    def percentage(self) -> float:
        if self.lines_total == 0:
            return 0.0
        return self.lines_hit / self.lines_total * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "lines_hit": self.lines_hit,
            "lines_total": self.lines_total,
            "percentage": self.percentage,
            "lines": {str(k): v for k, v in self.lines.items()},
        }


@dataclass(frozen=True, slots=True)
class CoverageData:
    """Per-file records in report order plus their aggregate totals."""

    files: tuple[FileCoverage, ...] = ()
    total_hit: int = 0
    total_lines: int = 0

    @classmethod
    def from_files(cls, files: list[FileCoverage]) -> CoverageData:
        return cls(
            files=tuple(files),
            total_hit=sum(f.lines_hit for f in files),
            total_lines=sum(f.lines_total for f in files),
        )

    @property
    def percentage(self) -> float:
        if self.total_lines == 0:
            return 0.0
        return self.total_hit / self.total_lines * 100.0

    def summary(self) -> dict[str, Any]:
        return {
            "total_hit": self.total_hit,
            "total_lines": self.total_lines,
            "percentage": self.percentage,
            "file_count": len(self.files),
        }


@dataclass(frozen=True, slots=True)
class ProjectMetadata:
    """Descriptive fields published next to a project's report.

    Built from the ``metadata.json`` document::

        {
          "project": "billing",
          "lastUpdated": "2026-10-01T12:00:00Z",
          "sourceRepo": "acme/billing",
          "sourceCommit": "<40 hex chars>",
          "sourceBranch": "main",
          "workflowRun": "123456"     # optional
        }

    Every field is optional; a missing key simply stays ``None``.
    """

    project: str | None = None
    last_updated: str | None = None
    source_repo: str | None = None
    source_commit: str | None = None
    source_branch: str | None = None
    workflow_run: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ProjectMetadata | None:
        if not isinstance(data, dict):
            return None

        def _str(key: str) -> str | None:
            value = data.get(key)
            if value is None:
                return None
            s = str(value).strip()
            return s or None

        return cls(
            project=_str("project"),
            last_updated=_str("lastUpdated"),
            source_repo=_str("sourceRepo"),
            source_commit=_str("sourceCommit"),
            source_branch=_str("sourceBranch"),
            workflow_run=_str("workflowRun"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class Project:
    name: str
    coverage: CoverageData
    metadata: ProjectMetadata | None = None

    def to_dict(self, include_files: bool = False) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "coverage": self.coverage.summary(),
            "metadata": None if self.metadata is None else self.metadata.to_dict(),
        }
        if include_files:
            d["files"] = [f.to_dict() for f in self.coverage.files]
        return d
