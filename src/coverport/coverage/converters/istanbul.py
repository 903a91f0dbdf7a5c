"""Statement/branch (Istanbul JSON) coverage converter.

Payload structure, one entry per file::

    {
      "/app/src/index.js": {
        "path": "/app/src/index.js",
        "statementMap": {"0": {"start": {"line": 1, "column": 0}, "end": {...}}},
        "s": {"0": 1},
        "fnMap": {"0": {"name": "main", "decl": {"start": {"line": 1}}, "line": 1}},
        "f": {"0": 1},
        "branchMap": {"0": {"type": "if", "locations": [...], "line": 5}},
        "b": {"0": [1, 0]}
      }
    }

Conversion reconciles paths against the local tree, drops unresolved and
excluded files, then writes the re-keyed JSON, an LCOV rendering and a
text summary.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from coverport.config.constants import FORMAT_STATEMENTS
from coverport.core.errors import PayloadError
from coverport.coverage.converters.base import ConvertOptions
from coverport.coverage.filters import is_excluded
from coverport.coverage.lcov import write_lcov
from coverport.coverage.models import (
    Branch,
    ConversionResult,
    CoveragePayload,
    CoverageSummary,
    FileReport,
    Function,
    NormalizedReport,
    Statement,
)
from coverport.coverage.reconcile import PathReconciler

log = structlog.get_logger(__name__)

_CANDIDATES = (
    "coverage-final.json",
    "out.json",
    ".nyc_output/out.json",
    ".nyc_output/coverage-final.json",
)
_REMAPPED_SUFFIX = "_remapped.json"


def _hits(value: Any, source: str, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise PayloadError.malformed(source, f"{what}: hit count must be a non-negative integer")
    return value


def _line(loc: Any) -> int:
    if isinstance(loc, dict):
        start = loc.get("start", {})
        if isinstance(start, dict):
            return int(start.get("line", 0) or 0)
    return 0


def _col(loc: Any, key: str) -> int:
    if isinstance(loc, dict):
        pos = loc.get(key, {})
        if isinstance(pos, dict):
            return int(pos.get("column", 0) or 0)
    return 0


def parse_file(path: str, data: Any, source: str) -> FileReport:
    """Build a FileReport from one Istanbul file entry.

    Raises:
        PayloadError: Wrong shape, negative counts, or hit ids missing from
            their map.
    """
    if not isinstance(data, dict):
        raise PayloadError.malformed(source, f"{path}: file entry must be an object")

    statement_map = data.get("statementMap") or {}
    fn_map = data.get("fnMap") or {}
    branch_map = data.get("branchMap") or {}
    s = data.get("s") or {}
    f = data.get("f") or {}
    b = data.get("b") or {}
    for name, value in (
        ("statementMap", statement_map),
        ("fnMap", fn_map),
        ("branchMap", branch_map),
        ("s", s),
        ("f", f),
        ("b", b),
    ):
        if not isinstance(value, dict):
            raise PayloadError.malformed(source, f"{path}: {name} must be an object")

    for hit_map, id_map, name in ((s, statement_map, "s"), (f, fn_map, "f"), (b, branch_map, "b")):
        unknown = set(hit_map) - set(id_map)
        if unknown:
            raise PayloadError.malformed(
                source, f"{path}: {name} references unknown id(s) {sorted(unknown)[:5]}"
            )

    report = FileReport(path=path)
    for sid, loc in statement_map.items():
        end = loc.get("end") if isinstance(loc, dict) else None
        end = end if isinstance(end, dict) else {}
        start_line = _line(loc)
        report.statements.append(
            Statement(
                id=str(sid),
                start_line=start_line,
                start_col=_col(loc, "start"),
                end_line=int(end.get("line", start_line) or start_line),
                end_col=_col(loc, "end"),
                hits=_hits(s.get(sid, 0), source, f"{path} s[{sid}]"),
            )
        )

    for fid, info in fn_map.items():
        info = info if isinstance(info, dict) else {}
        decl_line = int(info.get("line") or _line(info.get("decl")) or _line(info.get("loc")))
        report.functions.append(
            Function(
                id=str(fid),
                name=str(info.get("name") or f"(anonymous_{fid})"),
                decl_line=decl_line,
                hits=_hits(f.get(fid, 0), source, f"{path} f[{fid}]"),
            )
        )

    for bid, info in branch_map.items():
        info = info if isinstance(info, dict) else {}
        locations = info.get("locations") or []
        if not isinstance(locations, list):
            raise PayloadError.malformed(
                source, f"{path}: branchMap[{bid}].locations must be a list"
            )
        line = int(info.get("line") or (_line(locations[0]) if locations else 0))
        counts = b.get(bid, [])
        if not isinstance(counts, list):
            raise PayloadError.malformed(source, f"{path}: b[{bid}] must be a list")
        arms = max(len(locations), len(counts))
        alternatives = tuple(
            _hits(counts[i], source, f"{path} b[{bid}][{i}]") if i < len(counts) else 0
            for i in range(arms)
        )
        report.branches.append(Branch(id=str(bid), start_line=line, alternatives=alternatives))

    return report


def load_document(path: Path) -> dict[str, Any]:
    try:
        document = json.loads(path.read_text())
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PayloadError.malformed(str(path), str(e)) from e
    if not isinstance(document, dict):
        raise PayloadError.malformed(str(path), "expected an object keyed by file path")
    return document


def find_input(directory: Path, label: str | None = None) -> Path:
    """Locate the raw statement-coverage JSON in a component directory.

    Raises:
        PayloadError: Nothing that looks like statement coverage exists.
    """
    if label:
        labelled = directory / f"coverage_{label}.json"
        if labelled.is_file():
            return labelled
    for name in _CANDIDATES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    nyc_dir = directory / ".nyc_output"
    if nyc_dir.is_dir():
        for candidate in sorted(nyc_dir.glob("*.json")):
            return candidate
    for candidate in sorted(directory.glob("*.json")):
        if "coverage" in candidate.name.lower() and not candidate.name.endswith(_REMAPPED_SUFFIX):
            return candidate
    raise PayloadError.empty(str(directory))


def _label_for(input_file: Path, label: str | None) -> str:
    if label:
        return label
    return input_file.stem.removeprefix("coverage_")


def summary_text(summary: CoverageSummary) -> str:
    return (
        "Coverage Summary\n"
        f"  Statements: {summary.statement_pct:.2f}% "
        f"({summary.statements_hit}/{summary.statements_found})\n"
        f"  Functions:  {summary.function_pct:.2f}% "
        f"({summary.functions_hit}/{summary.functions_found})\n"
        f"  Branches:   {summary.branch_pct:.2f}% "
        f"({summary.branches_hit}/{summary.branches_found})\n"
        f"  Files:      {summary.files}\n"
    )


class IstanbulConverter:
    """Converter for statement-format (Istanbul/NYC JSON) coverage."""

    @property
    def format_id(self) -> str:
        return FORMAT_STATEMENTS

    def can_convert(self, directory: Path) -> bool:
        if any((directory / name).exists() for name in ("coverage-final.json", "out.json")):
            return True
        if (directory / ".nyc_output").is_dir():
            return True
        return any(
            not p.name.endswith(_REMAPPED_SUFFIX) for p in directory.glob("coverage_*.json")
        )

    def check_prerequisites(self) -> None:
        return None

    def persist(self, payload: CoveragePayload, directory: Path) -> list[Path]:
        try:
            document = json.loads(payload.raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PayloadError.malformed(payload.label, str(e)) from e
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / f"coverage_{payload.label}.json"
        target.write_text(json.dumps(document, indent=2))
        log.debug("istanbul.persisted", path=str(target), files=len(document))
        return [target]

    def convert(self, directory: Path, options: ConvertOptions) -> ConversionResult:
        input_file = find_input(directory, options.label)
        label = _label_for(input_file, options.label)
        source = str(input_file)
        document = load_document(input_file)

        rewritten: dict[str, str] = {p: p for p in document}
        reconciler: PathReconciler | None = None
        if options.remap_paths and options.source_root is not None:
            reconciler = PathReconciler(options.source_root)
            _, rewritten = reconciler.reconcile(document)

        report = NormalizedReport(source_format=self.format_id)
        remapped: dict[str, Any] = {}
        dropped_unresolved = dropped_filtered = 0
        for original, data in document.items():
            path = rewritten[original]
            if not options.skip_filter and (
                is_excluded(original, options.filters) or is_excluded(path, options.filters)
            ):
                dropped_filtered += 1
                continue
            if reconciler is not None and not reconciler.exists(path):
                dropped_unresolved += 1
                continue
            try:
                report.files[path] = parse_file(path, data, source)
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                raise PayloadError.malformed(source, f"{original}: {e!r}") from e
            entry = dict(data)
            entry["path"] = path
            remapped[path] = entry

        if dropped_unresolved and not report.files:
            log.warning(
                "istanbul.all_unresolved",
                dropped=dropped_unresolved,
                source_root=str(options.source_root),
            )
        log.info(
            "istanbul.converted",
            files=len(report.files),
            dropped_unresolved=dropped_unresolved,
            dropped_filtered=dropped_filtered,
        )

        remapped_file = directory / f"coverage_{label}{_REMAPPED_SUFFIX}"
        remapped_file.write_text(json.dumps(remapped, indent=2))
        lcov_file = write_lcov(report, directory / f"coverage_{label}.lcov")
        summary = report.summary
        report_file = directory / f"report_{label}.txt"
        report_file.write_text(summary_text(summary))

        return ConversionResult(
            format=self.format_id,
            report_file=lcov_file,
            artifacts=(remapped_file, lcov_file, report_file),
            total_pct=summary.statement_pct,
            summary=summary,
        )
