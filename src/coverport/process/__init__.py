"""Process phase."""

from coverport.process.pipeline import (
    ComponentOutcome,
    ProcessRequest,
    ProcessResult,
    Processor,
    check_workspace,
)

__all__ = [
    "ComponentOutcome",
    "ProcessRequest",
    "ProcessResult",
    "Processor",
    "check_workspace",
]
