"""Tests for structured logging."""

import json
import logging
from pathlib import Path

import pytest
import structlog

from coverport.config.models import LoggingConfig, LogOutputConfig
from coverport.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from coverport.core.progress import suppress_console_logs


def last_record(path: Path) -> dict:
    return json.loads(path.read_text().strip().splitlines()[-1])


def json_file(path: Path, level: str = "INFO", **output: str) -> LoggingConfig:
    return LoggingConfig(
        level=level,
        outputs=[LogOutputConfig(format="json", destination=str(path), **output)],
    )


@pytest.fixture(autouse=True)
def _fresh_logging():
    structlog.reset_defaults()
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


class TestRunId:
    def test_explicit_id(self) -> None:
        assert set_run_id("collect-123") == "collect-123"
        assert get_run_id() == "collect-123"

    def test_generated_id_is_short_hex(self) -> None:
        rid = set_run_id()

        assert len(rid) == 12
        int(rid, 16)

    def test_clear(self) -> None:
        set_run_id("to-clear")
        clear_run_id()

        assert get_run_id() is None


class TestConfigureLogging:
    def test_json_record_carries_run_id_and_fields(self, tmp_path: Path) -> None:
        log_file = tmp_path / "coverport.log"
        configure_logging(config=json_file(log_file))
        set_run_id("abc123def456")

        get_logger("collect").info("collect.target_done", coverage_dir="web/run-web")

        data = last_record(log_file)
        assert data["event"] == "collect.target_done"
        assert data["coverage_dir"] == "web/run-web"
        assert data["run_id"] == "abc123def456"
        assert data["logger"] == "collect"
        assert data["level"] == "info"
        assert "timestamp" in data

    def test_no_run_id_field_outside_a_run(self, tmp_path: Path) -> None:
        log_file = tmp_path / "coverport.log"
        configure_logging(config=json_file(log_file))

        get_logger().info("startup")

        assert "run_id" not in last_record(log_file)

    def test_bound_target_context_is_merged(self, tmp_path: Path) -> None:
        log_file = tmp_path / "ctx.log"
        configure_logging(config=json_file(log_file, level="DEBUG"))

        with structlog.contextvars.bound_contextvars(component="frontend", namespace="demo"):
            structlog.get_logger("x").warning("collect.reset_failed")

        data = last_record(log_file)
        assert data["component"] == "frontend"
        assert data["namespace"] == "demo"

    def test_each_output_applies_its_own_level(self, tmp_path: Path) -> None:
        debug_file = tmp_path / "debug.log"
        info_file = tmp_path / "info.log"
        configure_logging(
            config=LoggingConfig(
                level="DEBUG",
                outputs=[
                    LogOutputConfig(format="json", destination=str(info_file), level="INFO"),
                    LogOutputConfig(format="json", destination=str(debug_file)),
                ],
            )
        )
        logger = get_logger()

        logger.debug("debug only")
        logger.info("info msg")

        assert "debug only" not in info_file.read_text()
        assert "info msg" in info_file.read_text()
        assert "debug only" in debug_file.read_text()
        assert "info msg" in debug_file.read_text()

    def test_reconfigure_replaces_handlers(self, tmp_path: Path) -> None:
        configure_logging(config=json_file(tmp_path / "a.log"))
        configure_logging(config=json_file(tmp_path / "b.log"))

        get_logger().info("second")

        assert len(logging.getLogger().handlers) == 1
        assert "second" not in (tmp_path / "a.log").read_text()
        assert "second" in (tmp_path / "b.log").read_text()

    def test_http_client_loggers_quieted(self, tmp_path: Path) -> None:
        configure_logging(config=json_file(tmp_path / "x.log", level="DEBUG"))

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_outputs_ignore_spinner(self, tmp_path: Path) -> None:
        log_file = tmp_path / "spin.log"
        configure_logging(config=json_file(log_file))

        with suppress_console_logs():
            get_logger().info("while.spinning")

        assert last_record(log_file)["event"] == "while.spinning"

    def test_terminal_output_held_back_while_spinning(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(json_format=True)

        with suppress_console_logs():
            get_logger().info("hidden.event")
        get_logger().info("shown.event")

        err = capsys.readouterr().err
        assert "hidden.event" not in err
        assert "shown.event" in err
