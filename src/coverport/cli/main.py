"""Coverport CLI - coverport command."""

import click

from coverport.cli.collect import collect_command
from coverport.cli.discover import discover_command
from coverport.cli.process import process_command
from coverport.core.logging import configure_logging, set_run_id


@click.group()
@click.version_option(version="0.1.0", prog_name="coverport")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Coverport - collect coverage from running workloads and publish reports."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")
    ctx.obj["run_id"] = set_run_id()


cli.add_command(collect_command, name="collect")
cli.add_command(discover_command, name="discover")
cli.add_command(process_command, name="process")


if __name__ == "__main__":
    cli()
