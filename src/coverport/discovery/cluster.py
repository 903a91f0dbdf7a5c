"""Cluster API access.

The resolver talks to the orchestration API through ``ClusterAPI``. The
shipped implementation shells out to ``kubectl ... -o json`` so that
credential loading (kubeconfig, in-cluster service account) stays
kubectl's concern.
"""

from __future__ import annotations

import json
from typing import Protocol, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from coverport.core.errors import ResolutionError, ToolError
from coverport.discovery.models import NamespaceList, Pod, PodList
from coverport.tools.runner import require_tool, run_tool

log = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class ClusterAPI(Protocol):
    """Read-only subset of the orchestration API used by discovery."""

    def list_namespaces(self) -> list[str]:
        """Names of all namespaces visible to the caller."""
        ...

    def list_pods(self, namespace: str, selector: str | None = None) -> list[Pod]:
        """Pods in a namespace, optionally filtered by a label selector."""
        ...

    def get_pod(self, namespace: str, name: str) -> Pod:
        """Single pod by name.

        Raises:
            ResolutionError: If the pod does not exist.
        """
        ...


class KubectlCluster:
    """ClusterAPI backed by the kubectl binary."""

    def __init__(self, *, kubectl: str | None = None, timeout: float = 30.0) -> None:
        self._kubectl = kubectl or require_tool("kubectl", "pod discovery")
        self._timeout = timeout

    def _get_json(self, args: list[str], model: type[M], operation: str) -> M:
        try:
            result = run_tool([self._kubectl, "get", *args, "-o", "json"], timeout=self._timeout)
        except ToolError as e:
            output = str(e.details.get("output", ""))
            if "NotFound" in output:
                raise ResolutionError.not_found("object", " ".join(args)) from e
            raise ResolutionError.api_unreachable(operation, output or e.message) from e

        try:
            return model.model_validate(json.loads(result.stdout))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ResolutionError.api_unreachable(operation, f"unexpected output: {e}") from e

    def list_namespaces(self) -> list[str]:
        namespaces = self._get_json(["namespaces"], NamespaceList, "list namespaces")
        return [ns.metadata.name for ns in namespaces.items]

    def list_pods(self, namespace: str, selector: str | None = None) -> list[Pod]:
        args = ["pods", "-n", namespace]
        if selector:
            args += ["-l", selector]
        pods = self._get_json(args, PodList, f"list pods in {namespace}")
        log.debug(
            "cluster.pods_listed", namespace=namespace, selector=selector, count=len(pods.items)
        )
        return pods.items

    def get_pod(self, namespace: str, name: str) -> Pod:
        return self._get_json(["pod", name, "-n", namespace], Pod, f"get pod {namespace}/{name}")
