"""coverport collect - gather coverage from running targets."""

from pathlib import Path

import click

from coverport.cli.utils import (
    cli_errors,
    command_config,
    discovery_options,
    overrides,
    split_csv,
)
from coverport.collect import Collector, push_collection
from coverport.collect.orchestrator import CollectionResult
from coverport.core.progress import heading, pluralize, spinner, status, summary_table
from coverport.discovery import ByURL, KubectlCluster, TargetResolver, build_descriptor


def _print_summary(result: CollectionResult) -> None:
    rows = []
    for outcome in result.outcomes:
        if outcome.failure is not None:
            detail = outcome.failure.reason
        elif outcome.conversion is not None:
            detail = outcome.conversion.describe()
        else:
            detail = "raw data saved"
        target = outcome.target
        rows.append((target.component_name, target.display_name, outcome.state, detail))
    if rows:
        summary_table("Collection", ("Component", "Target", "State", "Detail"), rows)

    style = "success" if result.ok else "error"
    status(
        f"{pluralize(len(result.succeeded), 'target')} collected, {len(result.failed)} failed",
        style=style,
    )
    if result.manifest_path:
        status(f"Manifest: {result.manifest_path}")
    if result.artifact_ref:
        status(f"Artifact: {result.artifact_ref}")


@click.command()
@discovery_options(with_url=True)
@click.option("--port", type=int, help="Coverage server port inside the target.")
@click.option(
    "--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), help="Output directory."
)
@click.option("--test-name", help="Label for this run.")
@click.option(
    "--source-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Local source tree for path remapping.",
)
@click.option("--no-remap", is_flag=True, help="Keep container paths as reported.")
@click.option("--filters", help="Comma-separated path substrings to exclude.")
@click.option("--no-auto-process", is_flag=True, help="Only save raw payloads.")
@click.option("--skip-generate", is_flag=True, help="Reuse an existing text profile.")
@click.option("--skip-filter", is_flag=True, help="Do not apply path filters.")
@click.option("--reset", is_flag=True, default=None, help="Reset counters before collecting.")
@click.option("--timeout", type=float, help="Overall deadline in seconds.")
@click.option("--workers", type=int, help="Targets collected concurrently.")
@click.option(
    "--format", "fmt", type=click.Choice(["auto", "go", "nyc"]), help="Expected payload format."
)
@click.option("--push", is_flag=True, default=None, help="Push results as an OCI artifact.")
@click.option("--registry", help="Registry for --push.")
@click.option("--repository", help="Repository for --push, e.g. org/coverage.")
@click.option("--tag", help="Artifact tag (default: <test-name>-<timestamp>).")
@click.option("--expires-after", help="Artifact expiry, e.g. 30d.")
@click.option("--artifact-title", help="OCI title annotation.")
def collect_command(
    url: str | None,
    snapshot_json: str | None,
    snapshot_file: Path | None,
    images: tuple[str, ...],
    namespace: str | None,
    label_selector: str | None,
    pods: str | None,
    port: int | None,
    output_dir: Path | None,
    test_name: str | None,
    source_dir: Path | None,
    no_remap: bool,
    filters: str | None,
    no_auto_process: bool,
    skip_generate: bool,
    skip_filter: bool,
    reset: bool | None,
    timeout: float | None,
    workers: int | None,
    fmt: str | None,
    push: bool | None,
    registry: str | None,
    repository: str | None,
    tag: str | None,
    expires_after: str | None,
    artifact_title: str | None,
) -> None:
    """Collect coverage from running workloads.

    Choose targets with exactly one of --url, --snapshot, --snapshot-file,
    --image, --label-selector or --pods.
    """
    with cli_errors():
        config = command_config(
            collect=overrides(
                port=port,
                output_dir=output_dir,
                test_name=test_name,
                source_dir=source_dir,
                remap_paths=False if no_remap else None,
                filters=split_csv(filters) if filters is not None else None,
                auto_process=False if no_auto_process else None,
                skip_generate=skip_generate or None,
                skip_filter=skip_filter or None,
                reset=reset,
                timeout_sec=timeout,
                workers=workers,
                format=fmt,
            ),
            push=overrides(
                enabled=push,
                registry=registry,
                repository=repository,
                tag=tag,
                expires_after=expires_after,
                artifact_title=artifact_title,
            ),
        )
        descriptor = build_descriptor(
            url=url,
            snapshot_json=snapshot_json,
            snapshot_file=snapshot_file,
            images=images,
            namespace=namespace,
            label_selector=label_selector,
            pod_names=split_csv(pods),
        )
        collector = Collector(config.collect)
        collector.check_prerequisites()

        cluster = None if isinstance(descriptor, ByURL) else KubectlCluster()
        with spinner("Resolving targets"):
            targets = TargetResolver(cluster).resolve(descriptor, namespace)
        if not targets:
            status("No matching running targets found", style="warning")
            raise SystemExit(1)

        heading(f"Collecting from {pluralize(len(targets), 'target')}")
        result = collector.run(targets, namespace=namespace)

        if config.push.enabled and result.ok and result.manifest is not None:
            with spinner("Pushing artifact"):
                result.artifact_ref = push_collection(
                    config.collect.output_dir, result.manifest, config.push
                )

    _print_summary(result)
    if not result.ok:
        raise SystemExit(1)
