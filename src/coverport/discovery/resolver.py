"""Target resolution: descriptor in, concrete collection targets out."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit

import structlog

from coverport.config.constants import DIRECT_URL_COMPONENT
from coverport.core.errors import ConfigurationError, ResolutionError
from coverport.discovery.cluster import ClusterAPI
from coverport.discovery.images import (
    component_name_from_labels,
    is_system_namespace,
    normalize_image_ref,
)
from coverport.discovery.models import (
    ByExplicitName,
    ByImage,
    ByLabelSelector,
    BySnapshot,
    ByURL,
    ResolvedTarget,
    TargetDescriptor,
)
from coverport.discovery.snapshot import parse_snapshot, parse_snapshot_file

log = structlog.get_logger(__name__)


def build_descriptor(
    *,
    url: str | None = None,
    snapshot_json: str | None = None,
    snapshot_file: Path | None = None,
    images: list[str] | tuple[str, ...] = (),
    namespace: str | None = None,
    label_selector: str | None = None,
    pod_names: list[str] | tuple[str, ...] = (),
) -> TargetDescriptor:
    """Turn raw discovery options into exactly one descriptor.

    Runs before any I/O against the cluster or the network.

    Raises:
        ConfigurationError: Zero or several discovery options given, or a
            namespaced option given without a namespace.
    """
    given = {
        "--url": bool(url),
        "--snapshot": bool(snapshot_json),
        "--snapshot-file": snapshot_file is not None,
        "--image": bool(images),
        "--label-selector": bool(label_selector),
        "--pods": bool(pod_names),
    }
    chosen = [name for name, present in given.items() if present]
    if not chosen:
        raise ConfigurationError.missing_required(
            "discovery option", "use one of: " + ", ".join(given)
        )
    if len(chosen) > 1:
        raise ConfigurationError.conflict(chosen)

    if url:
        return ByURL(url=url)
    if snapshot_json:
        return parse_snapshot(snapshot_json).to_descriptor()
    if snapshot_file is not None:
        return parse_snapshot_file(snapshot_file).to_descriptor()
    if images:
        return ByImage(image_refs=tuple(images))
    if label_selector:
        if not namespace:
            raise ConfigurationError.missing_required("--namespace", "needed by --label-selector")
        return ByLabelSelector(namespace=namespace, selector=label_selector)
    if not namespace:
        raise ConfigurationError.missing_required("--namespace", "needed by --pods")
    return ByExplicitName(namespace=namespace, names=tuple(pod_names))


def validate_url(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ResolutionError.invalid_target(url, "expected http(s)://host[:port]")
    try:
        parts.port  # noqa: B018
    except ValueError as e:
        raise ResolutionError.invalid_target(url, str(e)) from e
    return url.rstrip("/")


class TargetResolver:
    """Resolves a TargetDescriptor against the cluster API.

    ``cluster`` may be None when only ``ByURL`` descriptors are resolved.
    """

    def __init__(self, cluster: ClusterAPI | None) -> None:
        self._cluster = cluster

    def _api(self) -> ClusterAPI:
        if self._cluster is None:
            raise ResolutionError.api_unreachable("resolve", "no cluster access configured")
        return self._cluster

    def resolve(
        self, descriptor: TargetDescriptor, namespace_hint: str | None = None
    ) -> list[ResolvedTarget]:
        """Resolve a descriptor.

        Args:
            descriptor: One discovery variant.
            namespace_hint: Restricts image searches to one namespace.

        Raises:
            ResolutionError: The cluster API is unreachable, or a named
                workload does not exist.
        """
        match descriptor:
            case ByURL(url=url):
                targets = [self._resolve_url(url)]
            case ByImage(image_refs=refs):
                targets = self._resolve_images(refs, namespace_hint)
            case BySnapshot(components=components):
                names = {normalize_image_ref(c.image_ref): c.name for c in components}
                targets = self._resolve_images(
                    tuple(c.image_ref for c in components), namespace_hint, names
                )
            case ByLabelSelector(namespace=ns, selector=selector):
                targets = self._resolve_selector(ns, selector)
            case ByExplicitName(namespace=ns, names=names):
                targets = self._resolve_names(ns, names)
            case _:
                raise ConfigurationError.invalid_value("descriptor", descriptor, "unknown variant")

        log.info("resolver.resolved", variant=type(descriptor).__name__, targets=len(targets))
        return targets

    def _resolve_url(self, url: str) -> ResolvedTarget:
        url = validate_url(url)
        return ResolvedTarget(
            display_name=url,
            component_name=DIRECT_URL_COMPONENT,
            image=url,
            endpoint_url=url,
        )

    def _namespaces(self, namespace_hint: str | None) -> list[str]:
        if namespace_hint:
            return [namespace_hint]
        namespaces = self._api().list_namespaces()
        return [ns for ns in namespaces if not is_system_namespace(ns)]

    def _resolve_images(
        self,
        image_refs: tuple[str, ...],
        namespace_hint: str | None,
        declared_names: dict[str, str] | None = None,
    ) -> list[ResolvedTarget]:
        # normalized -> original reference; first declaration wins
        wanted: dict[str, str] = {}
        for ref in image_refs:
            wanted.setdefault(normalize_image_ref(ref), ref)

        cluster = self._api()
        targets: list[ResolvedTarget] = []
        for ns in self._namespaces(namespace_hint):
            try:
                pods = cluster.list_pods(ns)
            except ResolutionError as e:
                if namespace_hint:
                    raise
                log.warning("resolver.namespace_skipped", namespace=ns, error=e.message)
                continue

            for pod in pods:
                if not pod.is_running:
                    continue
                for container in pod.spec.containers:
                    normalized = normalize_image_ref(container.image)
                    original = wanted.get(normalized)
                    if original is None:
                        continue
                    if declared_names is not None:
                        component = declared_names[normalized]
                    else:
                        component = component_name_from_labels(pod.labels, original)
                    targets.append(ResolvedTarget.for_pod(pod, component, container, original))

        return targets

    def _resolve_selector(self, namespace: str, selector: str) -> list[ResolvedTarget]:
        targets = []
        for pod in self._api().list_pods(namespace, selector):
            if not pod.is_running:
                continue
            container = pod.first_container
            image = container.image if container else ""
            component = component_name_from_labels(pod.labels, image)
            targets.append(ResolvedTarget.for_pod(pod, component, container))
        return targets

    def _resolve_names(self, namespace: str, names: tuple[str, ...]) -> list[ResolvedTarget]:
        cluster = self._api()
        targets = []
        for name in names:
            pod = cluster.get_pod(namespace, name)
            if not pod.is_running:
                log.warning(
                    "resolver.pod_not_running",
                    namespace=namespace,
                    pod=name,
                    phase=pod.status.phase,
                )
                continue
            container = pod.first_container
            image = container.image if container else ""
            component = component_name_from_labels(pod.labels, image)
            # get_pod output may omit metadata.namespace
            if not pod.metadata.namespace:
                pod = pod.model_copy(
                    update={"metadata": pod.metadata.model_copy(update={"namespace": namespace})}
                )
            targets.append(ResolvedTarget.for_pod(pod, component, container))
        return targets
