"""Collection orchestration."""

from coverport.collect.orchestrator import (
    CollectionResult,
    Collector,
    TargetFailure,
    TargetOutcome,
    TargetState,
    default_test_name,
)
from coverport.collect.push import push_collection

__all__ = [
    "CollectionResult",
    "Collector",
    "TargetFailure",
    "TargetOutcome",
    "TargetState",
    "default_test_name",
    "push_collection",
]
