"""Converter protocol shared by all coverage formats."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from coverport.coverage.models import ConversionResult, CoveragePayload


@dataclass(frozen=True, slots=True)
class ConvertOptions:
    """Per-run conversion settings.

    ``source_root`` is the local checkout used for path reconciliation;
    None disables reconciliation and the unresolved-path drop.
    """

    label: str | None = None
    source_root: Path | None = None
    filters: tuple[str, ...] = ()
    remap_paths: bool = True
    skip_generate: bool = False
    skip_filter: bool = False
    html: bool = False


class CoverageConverter(Protocol):
    """One coverage format: persist raw payloads and convert them."""

    @property
    def format_id(self) -> str:
        """``counters-binary`` or ``statement-json``."""
        ...

    def can_convert(self, directory: Path) -> bool:
        """Check whether a directory holds raw data of this format."""
        ...

    def persist(self, payload: CoveragePayload, directory: Path) -> list[Path]:
        """Write the raw payload under ``directory``; returns written files."""
        ...

    def check_prerequisites(self) -> None:
        """Raise ToolError if a required external tool is missing."""
        ...

    def convert(self, directory: Path, options: ConvertOptions) -> ConversionResult:
        """Produce reports from the raw data in ``directory``.

        Raises:
            PayloadError: Raw data missing or malformed.
            ToolError: External conversion tool failed.
        """
        ...
