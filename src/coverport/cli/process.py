"""coverport process - convert collected coverage against real sources and upload."""

from pathlib import Path

import click

from coverport.cli.utils import cli_errors, command_config, overrides, split_csv
from coverport.core.progress import heading, pluralize, status, summary_table
from coverport.process import ProcessRequest, ProcessResult, Processor


def _print_summary(result: ProcessResult) -> None:
    rows = []
    for outcome in result.outcomes:
        if not outcome.ok:
            rows.append((outcome.name, "failed", outcome.reason or ""))
            continue
        conversion = outcome.conversion
        detail = conversion.describe() if conversion else ""
        if outcome.uploaded:
            detail += ", uploaded"
        rows.append((outcome.name, "done", detail))
    if rows:
        summary_table("Processing", ("Component", "State", "Detail"), rows)
    for outcome in result.outcomes:
        for warning in outcome.warnings:
            status(f"{outcome.name}: {warning}", style="warning")

    status(
        f"{pluralize(len(result.processed), 'component')} processed, {len(result.failed)} failed",
        style="success" if result.ok else "error",
    )
    if result.workspace_kept:
        status(f"Workspace: {result.workspace}")


@click.command()
@click.option(
    "--coverage-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Output directory of a collect run.",
)
@click.option("--artifact-ref", help="OCI artifact pushed by collect --push.")
@click.option(
    "--workspace", type=click.Path(file_okay=False, path_type=Path), help="Working directory."
)
@click.option("--keep-workspace", is_flag=True, default=None, help="Do not delete the workspace.")
@click.option("--format", "fmt", type=click.Choice(["auto", "go", "nyc"]), help="Coverage format.")
@click.option("--filters", help="Comma-separated path substrings to exclude.")
@click.option("--image", help="Image of a single component (no metadata.json).")
@click.option("--repo-url", help="Repository URL; skips attestation lookup.")
@click.option("--commit-sha", help="Commit to check out; used with --repo-url.")
@click.option("--skip-clone", is_flag=True, help="Reuse <workspace>/<component>/repo.")
@click.option("--clone-depth", type=int, help="Shallow clone depth; 0 for a full clone.")
@click.option("--no-upload", is_flag=True, help="Convert only.")
@click.option("--codecov-token", envvar="CODECOV_TOKEN", help="Codecov upload token.")
@click.option("--codecov-flags", help="Comma-separated Codecov flags.")
@click.option("--codecov-name", help="Codecov upload name.")
def process_command(
    coverage_dir: Path | None,
    artifact_ref: str | None,
    workspace: Path | None,
    keep_workspace: bool | None,
    fmt: str | None,
    filters: str | None,
    image: str | None,
    repo_url: str | None,
    commit_sha: str | None,
    skip_clone: bool,
    clone_depth: int | None,
    no_upload: bool,
    codecov_token: str | None,
    codecov_flags: str | None,
    codecov_name: str | None,
) -> None:
    """Clone each component's source and produce reports against it.

    Reads metadata.json from --coverage-dir or from the pulled
    --artifact-ref, looks up the repository and commit for each image,
    and uploads the converted report to Codecov.
    """
    with cli_errors():
        config = command_config(
            process=overrides(
                format=fmt,
                filters=split_csv(filters) if filters is not None else None,
                keep_workspace=keep_workspace,
                clone_depth=clone_depth,
                upload=False if no_upload else None,
                codecov_flags=split_csv(codecov_flags) if codecov_flags is not None else None,
                codecov_name=codecov_name,
            )
        )
        request = ProcessRequest(
            coverage_dir=coverage_dir,
            artifact_ref=artifact_ref,
            workspace=workspace,
            image=image,
            repo_url=repo_url,
            commit_sha=commit_sha,
            skip_clone=skip_clone,
            codecov_token=codecov_token,
        )
        heading("Processing coverage")
        result = Processor(config.process).run(request)

    _print_summary(result)
    if not result.ok:
        raise SystemExit(1)
