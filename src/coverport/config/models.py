"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config() (CLI flags)
2. Environment variables (COVERPORT__SECTION__KEY)
3. Repo YAML (./.coverport.yaml)
4. Global YAML (~/.config/coverport/config.yaml)
5. Built-in defaults (this file)

Examples:
    COVERPORT__LOGGING__LEVEL=DEBUG
    COVERPORT__COLLECT__PORT=9095
    COVERPORT__COLLECT__WORKERS=4
    COVERPORT__PUSH__REGISTRY=ghcr.io
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from coverport.config.constants import (
    DEFAULT_COLLECT_FILTERS,
    DEFAULT_COVERAGE_PORT,
    DEFAULT_PROCESS_FILTERS,
    HEALTH_ATTEMPTS_DEFAULT,
    HEALTH_INTERVAL_SEC_DEFAULT,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
ProcessFormat = Literal["auto", "go", "nyc"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        COVERPORT__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(default="WARNING", description="Root log level.")
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class CollectConfig(BaseModel):
    """Collection run configuration.

    Env vars:
        COVERPORT__COLLECT__PORT: Coverage server port inside the target
        COVERPORT__COLLECT__OUTPUT_DIR: Where artifacts and metadata.json go
        COVERPORT__COLLECT__TIMEOUT_SEC: Overall deadline for one run
        COVERPORT__COLLECT__WORKERS: Targets collected concurrently
    """

    port: int = Field(default=DEFAULT_COVERAGE_PORT, description="Coverage server port.")
    output_dir: Path = Field(default=Path("./coverage-output"))
    test_name: str | None = Field(
        default=None,
        description="Label for this run. Generated from the start time when unset.",
    )
    source_dir: Path = Field(
        default=Path("."),
        description="Local source tree used for path reconciliation.",
    )
    remap_paths: bool = True
    filters: list[str] = Field(default_factory=lambda: list(DEFAULT_COLLECT_FILTERS))
    format: ProcessFormat = Field(
        default="auto",
        description="Expected payload format; go or nyc checks tool prerequisites up front.",
    )
    auto_process: bool = Field(
        default=True,
        description="Convert payloads right after collecting them.",
    )
    skip_generate: bool = False
    skip_filter: bool = False
    reset: bool = Field(
        default=False,
        description="Reset in-process counters before collecting.",
    )
    timeout_sec: float = Field(
        default=120.0,
        description="Overall deadline; in-flight network calls are cancelled past it.",
    )
    health_attempts: int = Field(default=HEALTH_ATTEMPTS_DEFAULT, ge=1)
    health_interval_sec: float = Field(default=HEALTH_INTERVAL_SEC_DEFAULT, ge=0.0)
    workers: int = Field(
        default=1,
        ge=1,
        description="Concurrent target workers. 1 = strictly sequential.",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError(f"Port must be 1-65535, got {v}")
        return v

    @field_validator("timeout_sec")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v


class PushConfig(BaseModel):
    """OCI artifact push configuration.

    Env vars:
        COVERPORT__PUSH__REGISTRY: Registry host (default: quay.io)
        COVERPORT__PUSH__REPOSITORY: Repository, e.g. org/coverage-artifacts
    """

    enabled: bool = False
    registry: str = "quay.io"
    repository: str | None = None
    tag: str | None = None
    expires_after: str = Field(default="30d", description="e.g. '30d', '1y'.")
    artifact_title: str | None = None


class ProcessConfig(BaseModel):
    """Process-phase configuration.

    Env vars:
        COVERPORT__PROCESS__FORMAT: auto, go or nyc
        COVERPORT__PROCESS__CLONE_DEPTH: 0 for a full clone
    """

    format: ProcessFormat = "auto"
    filters: list[str] = Field(default_factory=lambda: list(DEFAULT_PROCESS_FILTERS))
    upload: bool = True
    codecov_flags: list[str] = Field(default_factory=lambda: ["e2e-tests"])
    codecov_name: str | None = None
    clone_depth: int = Field(default=1, ge=0)
    keep_workspace: bool = False
    timeout_sec: float = Field(default=1800.0, gt=0)


class CoverportConfig(BaseModel):
    """Root configuration for coverport."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    collect: CollectConfig = Field(default_factory=CollectConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
