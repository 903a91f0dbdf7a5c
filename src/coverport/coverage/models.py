"""Normalized coverage data model.

File-centric: every converter ends up with one ``FileReport`` per source
file, keyed by the reconciled local path. Per-line hit counts are derived
from statements, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal

from coverport.config.constants import FORMAT_COUNTERS, FORMAT_STATEMENTS

CoverageFormat = Literal["counters-binary", "statement-json"]

FORMATS: tuple[str, ...] = (FORMAT_COUNTERS, FORMAT_STATEMENTS)


@dataclass(frozen=True, slots=True)
class CoveragePayload:
    """Raw coverage as returned by one target.

    ``raw`` is opaque outside the converter for ``format``.
    """

    label: str
    captured_at: datetime
    format: CoverageFormat
    raw: bytes


@dataclass(frozen=True, slots=True)
class Statement:
    id: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    hits: int


@dataclass(frozen=True, slots=True)
class Function:
    id: str
    name: str
    decl_line: int
    hits: int


@dataclass(frozen=True, slots=True)
class Branch:
    """One branch point; ``alternatives`` holds the hit count per arm."""

    id: str
    start_line: int
    alternatives: tuple[int, ...]


@dataclass(slots=True)
class FileReport:
    """Coverage for a single source file."""

    path: str
    statements: list[Statement] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    branches: list[Branch] = field(default_factory=list)

    def line_hits(self) -> dict[int, int]:
        """Line number -> max hit count of statements starting on it.

        Overlapping statements on one line do not add up.
        """
        lines: dict[int, int] = {}
        for stmt in self.statements:
            lines[stmt.start_line] = max(lines.get(stmt.start_line, 0), stmt.hits)
        return dict(sorted(lines.items()))

    @property
    def statements_found(self) -> int:
        return len(self.statements)

    @property
    def statements_hit(self) -> int:
        return sum(1 for s in self.statements if s.hits > 0)

    @property
    def functions_found(self) -> int:
        return len(self.functions)

    @property
    def functions_hit(self) -> int:
        return sum(1 for f in self.functions if f.hits > 0)

    @property
    def branches_found(self) -> int:
        """Branch arms, not branch points."""
        return sum(len(b.alternatives) for b in self.branches)

    @property
    def branches_hit(self) -> int:
        return sum(1 for b in self.branches for hits in b.alternatives if hits > 0)

    @property
    def statement_pct(self) -> float:
        return percentage(self.statements_hit, self.statements_found)

    @property
    def function_pct(self) -> float:
        return percentage(self.functions_hit, self.functions_found)

    @property
    def branch_pct(self) -> float:
        return percentage(self.branches_hit, self.branches_found)


def percentage(covered: int, total: int) -> float:
    """covered/total as a percentage; 0/0 is 0."""
    if total <= 0:
        return 0.0
    return covered * 100.0 / total


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    """Aggregate statistics over a report."""

    files: int
    statements_found: int
    statements_hit: int
    functions_found: int
    functions_hit: int
    branches_found: int
    branches_hit: int

    @property
    def statement_pct(self) -> float:
        return percentage(self.statements_hit, self.statements_found)

    @property
    def function_pct(self) -> float:
        return percentage(self.functions_hit, self.functions_found)

    @property
    def branch_pct(self) -> float:
        return percentage(self.branches_hit, self.branches_found)


@dataclass(slots=True)
class NormalizedReport:
    """Per-file coverage keyed by path."""

    source_format: str
    files: dict[str, FileReport] = field(default_factory=dict)

    @property
    def summary(self) -> CoverageSummary:
        files = self.files.values()
        return CoverageSummary(
            files=len(self.files),
            statements_found=sum(f.statements_found for f in files),
            statements_hit=sum(f.statements_hit for f in files),
            functions_found=sum(f.functions_found for f in files),
            functions_hit=sum(f.functions_hit for f in files),
            branches_found=sum(f.branches_found for f in files),
            branches_hit=sum(f.branches_hit for f in files),
        )


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """What a converter produced for one component directory."""

    format: str
    report_file: Path
    artifacts: tuple[Path, ...] = ()
    total_pct: float | None = None
    summary: CoverageSummary | None = None

    def describe(self) -> str:
        if self.total_pct is None:
            return self.format
        return f"{self.format} {self.total_pct:.1f}%"
