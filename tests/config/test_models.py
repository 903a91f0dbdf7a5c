"""Tests for config models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from coverport.config.models import CollectConfig, LogOutputConfig, ProcessConfig, PushConfig


class TestCollectConfig:
    def test_defaults(self) -> None:
        config = CollectConfig()

        assert config.port == 9095
        assert config.output_dir == Path("./coverage-output")
        assert config.remap_paths is True
        assert config.auto_process is True
        assert config.reset is False
        assert config.format == "auto"

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_out_of_range_rejected(self, port: int) -> None:
        with pytest.raises(ValidationError):
            CollectConfig(port=port)

    def test_negative_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CollectConfig(timeout_sec=-5)


class TestLogOutputConfig:
    def test_relative_file_destination_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/out.log")

    @pytest.mark.parametrize("destination", ["stderr", "stdout"])
    def test_stream_destinations_accepted(self, destination: str) -> None:
        assert LogOutputConfig(destination=destination).destination == destination


class TestOtherSections:
    def test_push_defaults(self) -> None:
        config = PushConfig()

        assert config.registry == "quay.io"
        assert config.expires_after == "30d"
        assert config.repository is None

    def test_process_defaults(self) -> None:
        config = ProcessConfig()

        assert config.filters == ["coverage_server.go", "_test.go"]
        assert config.clone_depth == 1
        assert config.upload is True
