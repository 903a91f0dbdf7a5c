"""Config module exports."""

from coverport.config.loader import load_config
from coverport.config.models import (
    CollectConfig,
    CoverportConfig,
    LoggingConfig,
    ProcessConfig,
    PushConfig,
)

__all__ = [
    "load_config",
    "CollectConfig",
    "CoverportConfig",
    "LoggingConfig",
    "ProcessConfig",
    "PushConfig",
]
