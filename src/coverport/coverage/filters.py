"""Exclusion filters: plain substring matches against file paths."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from coverport.config.constants import DEFAULT_STATEMENT_FILTERS, FORMAT_STATEMENTS


def is_excluded(path: str, filters: Sequence[str]) -> bool:
    return any(f and f in path for f in filters)


def filter_lines(lines: Iterable[str], filters: Sequence[str]) -> list[str]:
    """Drop every line containing one of the filter substrings."""
    return [line for line in lines if not is_excluded(line, filters)]


def filters_for(fmt: str, configured: Sequence[str], defaults: Sequence[str]) -> tuple[str, ...]:
    """Filters to apply when converting a payload of format ``fmt``.

    While ``configured`` is still the phase's built-in ``defaults``,
    statement payloads get the broader set that also drops the shim's
    server, client and test infrastructure. Anything set by the user is
    used as given.
    """
    filters = tuple(configured)
    if fmt == FORMAT_STATEMENTS and filters == tuple(defaults):
        return DEFAULT_STATEMENT_FILTERS
    return filters
