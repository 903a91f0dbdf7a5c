"""Counter-format (Go binary coverage) converter.

The payload is the instrumented binary's coverage directory
(``covmeta.<hash>`` + ``covcounters.<hash>.<pid>.<ts>``). The ``go``
toolchain turns it into a text profile::

    mode: atomic
    /build/src/pkg/handler.go:10.2,12.16 3 1

Conversion strips the common absolute root from record paths, writes a
filtered profile and reads the total from ``go tool cover -func``.
"""

from __future__ import annotations

import io
import re
import tarfile
from dataclasses import dataclass
from pathlib import Path

import structlog

from coverport.config.constants import FORMAT_COUNTERS
from coverport.core.errors import PayloadError, ToolError
from coverport.coverage.converters.base import ConvertOptions
from coverport.coverage.filters import is_excluded
from coverport.coverage.models import (
    ConversionResult,
    CoveragePayload,
    FileReport,
    NormalizedReport,
    Statement,
)
from coverport.coverage.reconcile import common_ancestor
from coverport.tools.runner import require_tool, run_tool

log = structlog.get_logger(__name__)

PROFILE_NAME = "coverage.out"
FILTERED_PROFILE_NAME = "coverage_filtered.out"
HTML_NAME = "coverage.html"

_RECORD = re.compile(
    r"^(?P<path>.+):(?P<sl>\d+)\.(?P<sc>\d+),(?P<el>\d+)\.(?P<ec>\d+) (?P<n>\d+) (?P<hits>\d+)$"
)
_RAW_PREFIXES = ("covmeta.", "covcounters.")


@dataclass(frozen=True, slots=True)
class ProfileRecord:
    path: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    num_statements: int
    hits: int

    def render(self) -> str:
        return (
            f"{self.path}:{self.start_line}.{self.start_col},{self.end_line}.{self.end_col} "
            f"{self.num_statements} {self.hits}"
        )


def parse_profile(text: str, source: str) -> tuple[str, list[ProfileRecord]]:
    """Split a text profile into its mode line and records.

    Raises:
        PayloadError: Missing mode line or an unparseable record.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines or not lines[0].startswith("mode:"):
        raise PayloadError.malformed(source, "missing 'mode:' line")
    records = []
    for number, line in enumerate(lines[1:], start=2):
        match = _RECORD.match(line)
        if match is None:
            raise PayloadError.malformed(source, f"line {number}: {line[:120]!r}")
        records.append(
            ProfileRecord(
                path=match["path"],
                start_line=int(match["sl"]),
                start_col=int(match["sc"]),
                end_line=int(match["el"]),
                end_col=int(match["ec"]),
                num_statements=int(match["n"]),
                hits=int(match["hits"]),
            )
        )
    return lines[0], records


def strip_common_root(records: list[ProfileRecord]) -> tuple[str, list[ProfileRecord]]:
    """Remove the absolute directory shared by every record path.

    Import-path style records (``github.com/org/repo/...``) are returned
    unchanged.
    """
    if not records or not all(r.path.startswith("/") for r in records):
        return "", records
    root = common_ancestor(r.path for r in records)
    if not root:
        return "", records
    stripped = [
        ProfileRecord(
            r.path[len(root) :],
            r.start_line,
            r.start_col,
            r.end_line,
            r.end_col,
            r.num_statements,
            r.hits,
        )
        for r in records
    ]
    return root, stripped


def render_profile(mode_line: str, records: list[ProfileRecord]) -> str:
    return "\n".join([mode_line, *(r.render() for r in records)]) + "\n"


def to_report(records: list[ProfileRecord]) -> NormalizedReport:
    report = NormalizedReport(source_format=FORMAT_COUNTERS)
    for index, record in enumerate(records):
        file = report.files.setdefault(record.path, FileReport(path=record.path))
        file.statements.append(
            Statement(
                id=str(index),
                start_line=record.start_line,
                start_col=record.start_col,
                end_line=record.end_line,
                end_col=record.end_col,
                hits=record.hits,
            )
        )
    return report


def parse_func_total(output: str) -> float | None:
    """Percentage from the ``total:`` row of ``go tool cover -func``."""
    for line in output.splitlines():
        if line.startswith("total:"):
            parts = line.split()
            if len(parts) >= 3:
                try:
                    return float(parts[-1].rstrip("%"))
                except ValueError:
                    return None
    return None


class GoToolchain:
    """The ``go`` subcommands used for counter-format coverage."""

    def __init__(self, go: str | None = None, *, timeout: float = 300.0) -> None:
        self._go = go
        self._timeout = timeout

    @property
    def go(self) -> str:
        if self._go is None:
            self._go = require_tool("go", "counter-format coverage conversion")
        return self._go

    def check(self) -> None:
        _ = self.go

    def textfmt(self, input_dir: Path, output: Path, *, cwd: Path | None = None) -> None:
        run_tool(
            [self.go, "tool", "covdata", "textfmt", f"-i={input_dir}", f"-o={output}"],
            cwd=cwd,
            timeout=self._timeout,
        )

    def cover_func(self, profile: Path, *, cwd: Path | None = None) -> str:
        return run_tool(
            [self.go, "tool", "cover", f"-func={profile}"], cwd=cwd, timeout=self._timeout
        ).stdout

    def cover_html(self, profile: Path, output: Path, *, cwd: Path | None = None) -> None:
        run_tool(
            [self.go, "tool", "cover", f"-html={profile}", f"-o={output}"],
            cwd=cwd,
            timeout=self._timeout,
        )


class CountersConverter:
    """Converter for counter-format coverage."""

    def __init__(self, toolchain: GoToolchain | None = None) -> None:
        self._go = toolchain or GoToolchain()

    @property
    def format_id(self) -> str:
        return FORMAT_COUNTERS

    def can_convert(self, directory: Path) -> bool:
        return any(p.name.startswith(_RAW_PREFIXES) for p in directory.iterdir() if p.is_file())

    def check_prerequisites(self) -> None:
        self._go.check()

    def persist(self, payload: CoveragePayload, directory: Path) -> list[Path]:
        """Unpack the counter archive into ``directory``.

        Only regular files are extracted, flattened to their base names.
        """
        directory.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        try:
            with tarfile.open(fileobj=io.BytesIO(payload.raw), mode="r:*") as tar:
                for member in tar.getmembers():
                    if not member.isfile():
                        continue
                    name = Path(member.name).name
                    if not name or name.startswith("."):
                        continue
                    extracted = tar.extractfile(member)
                    if extracted is None:
                        continue
                    target = directory / name
                    target.write_bytes(extracted.read())
                    written.append(target)
        except tarfile.TarError as e:
            raise PayloadError.malformed(payload.label, f"bad counter archive: {e}") from e

        if not any(p.name.startswith("covmeta.") for p in written):
            raise PayloadError.field_missing("counter archive", "covmeta.*")
        log.debug("counters.persisted", directory=str(directory), files=len(written))
        return written

    def convert(self, directory: Path, options: ConvertOptions) -> ConversionResult:
        profile = directory / PROFILE_NAME
        cwd = options.source_root

        if not options.skip_generate:
            if not any(p.name.startswith("covmeta.") for p in directory.iterdir()):
                raise PayloadError.empty(str(directory))
            self._go.textfmt(directory, profile, cwd=cwd)
        if not profile.is_file():
            raise PayloadError.empty(str(directory))

        mode_line, records = parse_profile(profile.read_text(), str(profile))
        root, records = strip_common_root(records)
        if root:
            profile.write_text(render_profile(mode_line, records))
            log.info("counters.root_stripped", root=root, records=len(records))

        report_file = profile
        if not options.skip_filter and options.filters:
            # Filters match anywhere in the rendered profile line
            kept = [r for r in records if not is_excluded(r.render(), options.filters)]
            report_file = directory / FILTERED_PROFILE_NAME
            report_file.write_text(render_profile(mode_line, kept))
            log.info("counters.filtered", kept=len(kept), dropped=len(records) - len(kept))
            records = kept

        artifacts = [profile] if report_file == profile else [profile, report_file]
        total = None
        try:
            total = parse_func_total(self._go.cover_func(report_file, cwd=cwd))
        except ToolError as e:
            log.warning("counters.func_summary_failed", error=e.message)

        if options.html:
            html = directory / HTML_NAME
            try:
                self._go.cover_html(report_file, html, cwd=cwd)
                artifacts.append(html)
            except ToolError as e:
                log.warning("counters.html_failed", error=e.message)

        report = to_report(records)
        return ConversionResult(
            format=self.format_id,
            report_file=report_file,
            artifacts=tuple(artifacts),
            total_pct=total,
            summary=report.summary,
        )
