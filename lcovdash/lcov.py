"""LCOV tracefile parsing.

Only the records needed for line coverage are consulted:

* ``SF:<path>`` opens a file record,
* ``DA:<line>,<hits>[,<checksum>]`` adds one executable line,
* ``end_of_record`` closes the open record.

Everything else (``TN:``, ``FN:``, ``BRDA:``, ``LF:``/``LH:`` ...) is ignored.
A record that is never closed, either because another ``SF:`` starts or the
input ends, is dropped.  Unparseable ``DA:`` numbers never raise: the line
still counts towards the file total but is treated as not hit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from lcovdash.models import CoverageData, FileCoverage

_SF = "SF:"
_DA = "DA:"
_END = "end_of_record"

# Leading optional sign + digits, like a lenient integer scan.
_INT_RE = re.compile(r"\s*([+-]?\d+)")


@dataclass
class _RecordState:
    path: str
    hit: int = 0
    total: int = 0
    lines: dict[int, int] = field(default_factory=dict)

    def freeze(self) -> FileCoverage:
        return FileCoverage(
            path=self.path,
            lines_hit=self.hit,
            lines_total=self.total,
            lines=dict(self.lines),
        )


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    m = _INT_RE.match(raw)
    if m is None:
        return None
    try:
        return int(m.group(1))
    except ValueError:
        # beyond the interpreter's int string-length limit
        return None


def _add_data_line(state: _RecordState, payload: str) -> None:
    parts = payload.split(",")
    line_no = _parse_int(parts[0])
    hits = _parse_int(parts[1] if len(parts) > 1 else None)

    if line_no is not None:
        # last write wins for repeated line numbers
        state.lines[line_no] = hits if hits is not None else 0
    state.total += 1
    if hits is not None and hits > 0:
        state.hit += 1


def parse_lcov(content: str) -> CoverageData:
    """Parse LCOV text into per-file coverage and aggregate totals."""
    files: list[FileCoverage] = []
    current: _RecordState | None = None

    for line in content.splitlines():
        if line.startswith(_SF):
            current = _RecordState(path=line[len(_SF):])
        elif line.startswith(_DA):
            if current is not None:
                _add_data_line(current, line[len(_DA):])
        elif line == _END:
            if current is not None:
                files.append(current.freeze())
                current = None

    return CoverageData.from_files(files)
