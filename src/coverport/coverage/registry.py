"""Format detection and converter lookup."""

from __future__ import annotations

from pathlib import Path

from coverport.config.constants import FORMAT_COUNTERS, FORMAT_STATEMENTS
from coverport.core.errors import ConfigurationError, PayloadError
from coverport.coverage.converters.base import CoverageConverter
from coverport.coverage.converters.counters import CountersConverter, GoToolchain
from coverport.coverage.converters.istanbul import IstanbulConverter

# Process-phase format names
_ALIASES = {
    "go": FORMAT_COUNTERS,
    "nyc": FORMAT_STATEMENTS,
    FORMAT_COUNTERS: FORMAT_COUNTERS,
    FORMAT_STATEMENTS: FORMAT_STATEMENTS,
}


def detect_format(directory: Path) -> str:
    """Detect the raw coverage format stored in a directory.

    Raises:
        PayloadError: The directory is missing or holds no known format.
    """
    if not directory.is_dir():
        raise PayloadError.empty(str(directory))
    names = [p.name for p in directory.iterdir()]
    if any(n.startswith(("covmeta.", "covcounters.")) for n in names):
        return FORMAT_COUNTERS
    for name in names:
        if name in ("coverage-final.json", "out.json", ".nyc_output"):
            return FORMAT_STATEMENTS
        if name.startswith("coverage_") and name.endswith(".json"):
            return FORMAT_STATEMENTS
    raise PayloadError.malformed(str(directory), "unable to detect coverage format")


def resolve_format(name: str, directory: Path | None = None) -> str:
    """Map ``auto``/``go``/``nyc`` (or a canonical name) to a format id."""
    if name == "auto":
        if directory is None:
            raise ConfigurationError.missing_required("format", "auto detection needs a directory")
        return detect_format(directory)
    try:
        return _ALIASES[name]
    except KeyError:
        raise ConfigurationError.invalid_value("format", name, "expected auto, go or nyc") from None


def get_converter(fmt: str, *, toolchain: GoToolchain | None = None) -> CoverageConverter:
    if fmt == FORMAT_COUNTERS:
        return CountersConverter(toolchain)
    if fmt == FORMAT_STATEMENTS:
        return IstanbulConverter()
    raise ConfigurationError.invalid_value("format", fmt, "unsupported coverage format")
