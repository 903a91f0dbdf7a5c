"""Human-facing status output on stderr.

Structured logs and status lines are separate channels: logs describe
what happened to each target for later grepping, status lines tell the
person at the terminal how the run is going. Both share stderr, so log
records to the terminal are held back while a spinner is drawing.
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

_console = Console(stderr=True)

# style -> (marker, colour)
_MARKERS: dict[str, tuple[str, str]] = {
    "success": ("✓", "green"),
    "error": ("✗", "red"),
    "warning": ("!", "yellow"),
}

# Row colours for outcome states in summary tables
_STATE_COLOURS = {"done": "green", "failed": "red"}


class _Gate(threading.local):
    depth: int = 0


_gate = _Gate()


def is_console_suppressed() -> bool:
    return _gate.depth > 0


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Hold back terminal log records; file outputs are unaffected."""
    _gate.depth += 1
    try:
        yield
    finally:
        _gate.depth -= 1


def get_console() -> Console:
    return _console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print one status line, prefixed by a marker for success/error/warning."""
    marker = _MARKERS.get(style)
    prefix = f"[{marker[1]}]{marker[0]}[/{marker[1]}] " if marker else "  "
    _console.print(" " * indent + prefix + message, highlight=False)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


def heading(title: str) -> None:
    _console.print(Rule(title, style="dim"))


@contextmanager
def spinner(message: str, *, indent: int = 0) -> Iterator[None]:
    """Animated spinner on a terminal; a single line in CI logs and pipes."""
    text = " " * indent + message
    if not sys.stderr.isatty():
        _console.print(f"{text}...", highlight=False)
        yield
        return
    with suppress_console_logs(), _console.status(f"[cyan]{text}[/cyan]", spinner="dots"):
        yield


def summary_table(title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    """Print per-target or per-component outcomes.

    A cell equal to ``done`` or ``failed`` colours its row.
    """
    table = Table(title=title, title_justify="left", show_edge=False, header_style="bold")
    for column in columns:
        table.add_column(column)
    for row in rows:
        colour = next((_STATE_COLOURS[c] for c in row if c in _STATE_COLOURS), None)
        table.add_row(*(str(c) for c in row), style=colour)
    _console.print(table)
