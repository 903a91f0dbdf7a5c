"""LCOV rendering of a NormalizedReport.

Per file::

    TN:
    SF:<path>
    FN:<line>,<name>  FNDA:<hits>,<name>  FNF  FNH
    DA:<line>,<max hits of statements starting there>  LF  LH
    BRDA:<line>,<block>,<arm>,<hits>  BRF  BRH
    end_of_record

Branch block ids are sequential per file, not the source map keys.
"""

from __future__ import annotations

from pathlib import Path

from coverport.coverage.models import FileReport, NormalizedReport


def _render_file(file: FileReport) -> list[str]:
    out = ["TN:", f"SF:{file.path}"]

    for fn in file.functions:
        out.append(f"FN:{fn.decl_line},{fn.name}")
        out.append(f"FNDA:{fn.hits},{fn.name}")
    out.append(f"FNF:{file.functions_found}")
    out.append(f"FNH:{file.functions_hit}")

    lines = file.line_hits()
    out.extend(f"DA:{line},{hits}" for line, hits in lines.items())
    out.append(f"LF:{len(lines)}")
    out.append(f"LH:{sum(1 for hits in lines.values() if hits > 0)}")

    for block, branch in enumerate(file.branches):
        for arm, hits in enumerate(branch.alternatives):
            out.append(f"BRDA:{branch.start_line},{block},{arm},{hits}")
    out.append(f"BRF:{file.branches_found}")
    out.append(f"BRH:{file.branches_hit}")

    out.append("end_of_record")
    return out


def render_lcov(report: NormalizedReport) -> str:
    lines: list[str] = []
    for path in sorted(report.files):
        lines.extend(_render_file(report.files[path]))
    return "\n".join(lines) + "\n" if lines else ""


def write_lcov(report: NormalizedReport, path: Path) -> Path:
    path.write_text(render_lcov(report))
    return path
