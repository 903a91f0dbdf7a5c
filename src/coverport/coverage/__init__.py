"""Coverage normalization: models, path reconciliation and converters."""

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
from coverport.coverage.reconcile import PathMapping, PathReconciler, common_ancestor
from coverport.coverage.registry import detect_format, get_converter, resolve_format

__all__ = [
    "Branch",
    "ConversionResult",
    "CoveragePayload",
    "CoverageSummary",
    "FileReport",
    "Function",
    "NormalizedReport",
    "PathMapping",
    "PathReconciler",
    "Statement",
    "common_ancestor",
    "detect_format",
    "get_converter",
    "resolve_format",
]
