"""Core module exports."""

from coverport.core.errors import (
    ConfigurationError,
    CoverportError,
    ErrorCode,
    InternalError,
    ManifestError,
    PayloadError,
    ResolutionError,
    ToolError,
    TransportError,
)
from coverport.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from coverport.core.progress import pluralize, spinner, status

__all__ = [
    # Errors
    "ConfigurationError",
    "CoverportError",
    "ErrorCode",
    "InternalError",
    "ManifestError",
    "PayloadError",
    "ResolutionError",
    "ToolError",
    "TransportError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Progress
    "pluralize",
    "spinner",
    "status",
]
