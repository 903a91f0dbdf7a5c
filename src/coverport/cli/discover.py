"""coverport discover - list the targets a collect run would use."""

import shlex
from pathlib import Path

import click

from coverport.cli.utils import cli_errors, discovery_options, split_csv
from coverport.core.progress import get_console, pluralize, spinner, status
from coverport.discovery import KubectlCluster, ResolvedTarget, TargetResolver, build_descriptor


def suggested_command(targets: list[ResolvedTarget]) -> str:
    """A collect invocation that targets exactly these pods."""
    namespaces = sorted({t.namespace for t in targets if t.namespace})
    if len(namespaces) == 1:
        pods = ",".join(t.pod_name for t in targets if t.pod_name)
        namespace = shlex.quote(namespaces[0])
        return f"coverport collect --namespace {namespace} --pods {shlex.quote(pods)}"
    images = sorted({t.image for t in targets if t.image})
    return "coverport collect " + " ".join(f"--image {shlex.quote(i)}" for i in images)


@click.command()
@discovery_options(with_url=False)
def discover_command(
    snapshot_json: str | None,
    snapshot_file: Path | None,
    images: tuple[str, ...],
    namespace: str | None,
    label_selector: str | None,
    pods: str | None,
) -> None:
    """Show which pods match, without collecting anything."""
    with cli_errors():
        descriptor = build_descriptor(
            snapshot_json=snapshot_json,
            snapshot_file=snapshot_file,
            images=images,
            namespace=namespace,
            label_selector=label_selector,
            pod_names=split_csv(pods),
        )
        with spinner("Resolving targets"):
            targets = TargetResolver(KubectlCluster()).resolve(descriptor, namespace)

    if not targets:
        status("No matching running targets found", style="warning")
        return

    console = get_console()
    by_component: dict[str, list[ResolvedTarget]] = {}
    for target in targets:
        by_component.setdefault(target.component_name, []).append(target)

    status(f"Found {pluralize(len(targets), 'target')}", style="success")
    for component, members in sorted(by_component.items()):
        console.print(f"\n[bold]{component}[/bold]", highlight=False)
        for t in members:
            container = f" ({t.container_name})" if t.container_name else ""
            console.print(f"  {t.display_name}{container}  {t.image or ''}", highlight=False)

    console.print()
    status("Collect with:")
    console.print(f"  {suggested_command(targets)}", highlight=False, soft_wrap=True)
