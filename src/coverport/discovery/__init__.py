"""Target discovery: descriptors, cluster access and resolution."""

from coverport.discovery.cluster import ClusterAPI, KubectlCluster
from coverport.discovery.images import normalize_image_ref
from coverport.discovery.models import (
    ByExplicitName,
    ByImage,
    ByLabelSelector,
    BySnapshot,
    ByURL,
    ResolvedTarget,
    SnapshotEntry,
    TargetDescriptor,
)
from coverport.discovery.resolver import TargetResolver, build_descriptor
from coverport.discovery.snapshot import Snapshot, parse_snapshot, parse_snapshot_file

__all__ = [
    "ByExplicitName",
    "ByImage",
    "ByLabelSelector",
    "BySnapshot",
    "ByURL",
    "ClusterAPI",
    "KubectlCluster",
    "ResolvedTarget",
    "Snapshot",
    "SnapshotEntry",
    "TargetDescriptor",
    "TargetResolver",
    "build_descriptor",
    "normalize_image_ref",
    "parse_snapshot",
    "parse_snapshot_file",
]
