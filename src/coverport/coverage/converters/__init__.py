"""Format converters."""

from coverport.coverage.converters.base import ConvertOptions, CoverageConverter
from coverport.coverage.converters.counters import CountersConverter, GoToolchain
from coverport.coverage.converters.istanbul import IstanbulConverter

__all__ = [
    "ConvertOptions",
    "CountersConverter",
    "CoverageConverter",
    "GoToolchain",
    "IstanbulConverter",
]
