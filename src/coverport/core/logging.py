"""Structured logging for collect and process runs.

Records go through structlog into stdlib ``logging`` so that every
configured output (stderr, stdout, or a file) can pick its own level and
renderer. Each CLI invocation gets a short run id that is stamped on all
of its records, and per-target context (component, namespace, pod) is
bound with ``structlog.contextvars`` by the orchestrator.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from coverport.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("coverport_run_id", default=None)

# Libraries that log every request at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None = None) -> str:
    """Install a run id for the current context, generating one if needed."""
    value = run_id or uuid4().hex[:12]
    _run_id.set(value)
    return value


def clear_run_id() -> None:
    _run_id.set(None)


def _stamp_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    run_id = _run_id.get()
    if run_id is not None:
        event_dict.setdefault("run_id", run_id)
    return event_dict


def _level(name: str | None, fallback: int = logging.INFO) -> int:
    if not name:
        return fallback
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else fallback


class _SpinnerGate(logging.Filter):
    """Hold back terminal records while a spinner is drawing."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        from coverport.core.progress import is_console_suppressed

        return not is_console_suppressed()


def _renderer(output: LogOutputConfig, *, terminal: bool) -> structlog.types.Processor:
    if output.format == "json":
        return structlog.processors.JSONRenderer()
    stream = sys.stdout if output.destination == "stdout" else sys.stderr
    return structlog.dev.ConsoleRenderer(
        colors=terminal and stream.isatty(),
        pad_event_to=0,
        pad_level=False,
    )


def _open_handler(output: LogOutputConfig) -> tuple[logging.Handler, bool]:
    if output.destination == "stderr":
        return logging.StreamHandler(sys.stderr), True
    if output.destination == "stdout":
        return logging.StreamHandler(sys.stdout), True
    path = Path(output.destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8"), False


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Install structlog and one stdlib handler per configured output.

    Args:
        config: Full logging section; when None a single stderr output at
            ``level`` is used.
        json_format: Render the implicit stderr output as JSON.
        level: Root level for the implicit output.
    """
    from coverport.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level.upper(),  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    root_level = _level(config.level)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _stamp_run_id,  # type: ignore[list-item]
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(root_level)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for output in config.outputs:
        handler, terminal = _open_handler(output)
        if terminal:
            handler.addFilter(_SpinnerGate())
        handler.setLevel(_level(output.level, root_level))
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=_renderer(output, terminal=terminal),
                foreign_pre_chain=pre_chain,
            )
        )
        root.addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
