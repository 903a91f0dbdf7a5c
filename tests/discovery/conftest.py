"""Fixtures for discovery tests."""

from __future__ import annotations

from typing import Any

import pytest

from coverport.core.errors import ResolutionError
from coverport.discovery.models import Pod


def make_pod(
    name: str,
    namespace: str,
    images: list[str],
    *,
    labels: dict[str, str] | None = None,
    phase: str = "Running",
) -> Pod:
    data: dict[str, Any] = {
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
        "spec": {"containers": [{"name": f"c{i}", "image": img} for i, img in enumerate(images)]},
        "status": {"phase": phase},
    }
    return Pod.model_validate(data)


class FakeCluster:
    """In-memory ClusterAPI."""

    def __init__(self, pods: list[Pod], *, failing_namespaces: set[str] | None = None) -> None:
        self.pods = pods
        self.failing = failing_namespaces or set()
        self.listed: list[str] = []

    def list_namespaces(self) -> list[str]:
        return sorted({p.namespace for p in self.pods} | self.failing | {"kube-system"})

    def list_pods(self, namespace: str, selector: str | None = None) -> list[Pod]:
        self.listed.append(namespace)
        if namespace in self.failing:
            raise ResolutionError.api_unreachable(f"list pods in {namespace}", "forbidden")
        pods = [p for p in self.pods if p.namespace == namespace]
        if selector:
            key, _, value = selector.partition("=")
            pods = [p for p in pods if p.labels.get(key) == value]
        return pods

    def get_pod(self, namespace: str, name: str) -> Pod:
        for pod in self.pods:
            if pod.namespace == namespace and pod.name == name:
                return pod
        raise ResolutionError.not_found("pod", name, namespace)


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster(
        [
            make_pod(
                "frontend-1",
                "demo",
                ["quay.io/org/frontend:v1"],
                labels={"app.kubernetes.io/name": "web"},
            ),
            make_pod(
                "backend-1",
                "demo",
                ["quay.io/org/backend@sha256:abc", "quay.io/org/sidecar:1"],
            ),
            make_pod("backend-old", "demo", ["quay.io/org/backend:v0"], phase="Pending"),
            make_pod("dns", "kube-system", ["quay.io/org/frontend:v1"]),
        ]
    )


@pytest.fixture
def pod_factory():
    return make_pod


@pytest.fixture
def cluster_factory():
    return FakeCluster
