"""Discovery data model.

A run is described by exactly one ``TargetDescriptor`` variant; the
resolver turns it into ``ResolvedTarget`` records. Pod shapes coming back
from the cluster API are validated into the pydantic models below.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from coverport.config.constants import RUNNING_PHASE

# =============================================================================
# Descriptors (one variant per run)
# =============================================================================


@dataclass(frozen=True, slots=True)
class ByImage:
    image_refs: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ByLabelSelector:
    namespace: str
    selector: str


@dataclass(frozen=True, slots=True)
class ByExplicitName:
    namespace: str
    names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SnapshotEntry:
    name: str
    image_ref: str


@dataclass(frozen=True, slots=True)
class BySnapshot:
    components: tuple[SnapshotEntry, ...]


@dataclass(frozen=True, slots=True)
class ByURL:
    url: str


TargetDescriptor = ByImage | ByLabelSelector | ByExplicitName | BySnapshot | ByURL

# =============================================================================
# Resolved targets
# =============================================================================

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_component_name(name: str) -> str:
    """Make a component name usable as a single directory name."""
    cleaned = _UNSAFE_CHARS.sub("-", name).strip("-.")
    return cleaned or "unknown"


@dataclass(frozen=True, slots=True)
class ResolvedTarget:
    """A concrete collection target.

    Either ``pod_name`` + ``namespace`` (cluster target) or
    ``endpoint_url`` (direct target) is set, never both.
    """

    display_name: str
    component_name: str
    namespace: str | None = None
    pod_name: str | None = None
    container_name: str | None = None
    image: str | None = None
    endpoint_url: str | None = None

    def __post_init__(self) -> None:
        is_cluster = bool(self.pod_name and self.namespace)
        is_direct = bool(self.endpoint_url)
        if is_cluster == is_direct:
            raise ValueError(
                "ResolvedTarget needs either pod_name+namespace or endpoint_url, not both/neither"
            )
        if not self.component_name:
            raise ValueError("ResolvedTarget.component_name must be non-empty")
        object.__setattr__(self, "component_name", safe_component_name(self.component_name))

    @property
    def is_cluster(self) -> bool:
        return self.endpoint_url is None

    @classmethod
    def for_pod(
        cls,
        pod: Pod,
        component_name: str,
        container: Container | None,
        image: str | None = None,
    ) -> ResolvedTarget:
        return cls(
            display_name=f"{pod.namespace}/{pod.name}",
            component_name=component_name,
            namespace=pod.namespace,
            pod_name=pod.name,
            container_name=container.name if container else None,
            image=image or (container.image if container else None),
        )


# =============================================================================
# Cluster API shapes (subset of core/v1 Pod)
# =============================================================================


class _KubeModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ObjectMeta(_KubeModel):
    name: str
    namespace: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class Container(_KubeModel):
    name: str
    image: str = ""


class PodSpec(_KubeModel):
    containers: list[Container] = Field(default_factory=list)


class PodStatus(_KubeModel):
    phase: str = ""


class Pod(_KubeModel):
    metadata: ObjectMeta
    spec: PodSpec = Field(default_factory=PodSpec)
    status: PodStatus = Field(default_factory=PodStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels

    @property
    def is_running(self) -> bool:
        return self.status.phase == RUNNING_PHASE

    @property
    def first_container(self) -> Container | None:
        return self.spec.containers[0] if self.spec.containers else None


class PodList(_KubeModel):
    items: list[Pod] = Field(default_factory=list)


class Namespace(_KubeModel):
    metadata: ObjectMeta


class NamespaceList(_KubeModel):
    items: list[Namespace] = Field(default_factory=list)

