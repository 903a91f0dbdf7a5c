"""CLI utilities shared by the commands."""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click

from coverport.config.loader import load_config
from coverport.config.models import CoverportConfig
from coverport.core.errors import CoverportError
from coverport.core.logging import configure_logging


def discovery_options(*, with_url: bool) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Attach the target discovery flags to a command.

    Exactly one discovery mode must be used per run; ``build_descriptor``
    enforces that.
    """

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        options = [
            click.option(
                "--snapshot", "snapshot_json", help="Release snapshot JSON (inline)."
            ),
            click.option(
                "--snapshot-file",
                type=click.Path(exists=True, dir_okay=False, path_type=Path),
                help="Release snapshot JSON file.",
            ),
            click.option(
                "--image", "images", multiple=True, help="Image reference (repeatable)."
            ),
            click.option("--namespace", "-n", help="Namespace to search or select from."),
            click.option("--label-selector", "-l", help="Pod label selector."),
            click.option("--pods", help="Comma-separated pod names."),
        ]
        if with_url:
            options.insert(0, click.option("--url", help="Coverage server URL (no cluster)."))
        for option in reversed(options):
            f = option(f)
        return f

    return decorator


def split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def overrides(**values: Any) -> dict[str, Any]:
    """Drop unset flags so config files and env vars keep their say."""
    return {key: value for key, value in values.items() if value is not None}


@contextmanager
def cli_errors() -> Iterator[None]:
    """Report CoverportError as a click error (exit code 1)."""
    try:
        yield
    except CoverportError as e:
        raise click.ClickException(str(e)) from e


def command_config(**sections: dict[str, Any]) -> CoverportConfig:
    """Load config for the running command and apply its logging section.

    ``-v`` on the group wins over configured outputs.
    """
    config = load_config(**sections)
    ctx = click.get_current_context(silent=True)
    verbose = bool(ctx and ctx.find_root().obj and ctx.find_root().obj.get("verbose"))
    if not verbose:
        configure_logging(config=config.logging)
    return config
