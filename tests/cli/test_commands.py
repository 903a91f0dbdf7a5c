"""Tests for the coverport commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from coverport.cli import discover as discover_module
from coverport.cli import process as process_module
from coverport.cli.discover import suggested_command
from coverport.cli.main import cli
from coverport.core.errors import ResolutionError
from coverport.coverage.models import ConversionResult
from coverport.discovery.models import Pod, ResolvedTarget
from coverport.process import ComponentOutcome, ProcessResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep project config files out of command runs."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CODECOV_TOKEN", raising=False)


def running_pod(name: str, namespace: str, image: str) -> Pod:
    return Pod.model_validate(
        {
            "metadata": {"name": name, "namespace": namespace, "labels": {"app": "web"}},
            "spec": {"containers": [{"name": "main", "image": image}]},
            "status": {"phase": "Running"},
        }
    )


class StaticCluster:
    def __init__(self, *pods: Pod) -> None:
        self.pods = {(p.namespace, p.name): p for p in pods}

    def list_namespaces(self) -> list[str]:
        return sorted({ns for ns, _ in self.pods})

    def list_pods(self, namespace: str, selector: str | None = None) -> list[Pod]:
        return [p for (ns, _), p in self.pods.items() if ns == namespace]

    def get_pod(self, namespace: str, name: str) -> Pod:
        try:
            return self.pods[(namespace, name)]
        except KeyError:
            raise ResolutionError.not_found("pod", name, namespace) from None


class TestMain:
    def test_help_lists_commands(self) -> None:
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("collect", "discover", "process"):
            assert command in result.output

    def test_version(self) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestCollectCommand:
    def test_conflicting_discovery_options(self) -> None:
        result = runner.invoke(cli, ["collect", "--url", "http://x:9095", "--image", "q/a:1"])

        assert result.exit_code == 1
        assert "mutually exclusive" in result.output

    def test_no_discovery_option(self) -> None:
        result = runner.invoke(cli, ["collect"])

        assert result.exit_code == 1
        assert "discovery option" in result.output

    def test_pods_need_namespace(self) -> None:
        result = runner.invoke(cli, ["collect", "--pods", "web-1"])

        assert result.exit_code == 1
        assert "--namespace" in result.output

    def test_invalid_format_rejected_by_click(self) -> None:
        result = runner.invoke(cli, ["collect", "--url", "http://x", "--format", "xml"])

        assert result.exit_code == 2


class TestDiscoverCommand:
    def test_lists_targets_and_suggests_collect(self, monkeypatch: pytest.MonkeyPatch) -> None:
        cluster = StaticCluster(running_pod("web-1", "demo", "quay.io/org/web:v1"))
        monkeypatch.setattr(discover_module, "KubectlCluster", lambda: cluster)

        result = runner.invoke(cli, ["discover", "-n", "demo", "--pods", "web-1"])

        assert result.exit_code == 0, result.output
        assert "demo/web-1" in result.output
        assert "coverport collect --namespace demo --pods web-1" in result.output

    def test_unknown_pod_is_an_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(discover_module, "KubectlCluster", lambda: StaticCluster())

        result = runner.invoke(cli, ["discover", "-n", "demo", "--pods", "missing"])

        assert result.exit_code == 1
        assert "RESOLUTION_NOT_FOUND" in result.output


def pod_target(name: str, namespace: str, image: str) -> ResolvedTarget:
    pod = running_pod(name, namespace, image)
    return ResolvedTarget.for_pod(pod, "web", pod.first_container)


class TestSuggestedCommand:
    def test_single_namespace_uses_pods(self) -> None:
        targets = [pod_target(name, "demo", "q/web:1") for name in ("web-1", "web-2")]

        assert suggested_command(targets) == (
            "coverport collect --namespace demo --pods web-1,web-2"
        )

    def test_several_namespaces_use_images(self) -> None:
        targets = [pod_target("web-1", "a", "q/web:1"), pod_target("api-1", "b", "q/api:1")]

        assert suggested_command(targets) == (
            "coverport collect --image q/api:1 --image q/web:1"
        )


class FakeProcessor:
    instances: list[FakeProcessor] = []

    def __init__(self, config: Any) -> None:
        self.config = config
        self.requests: list[Any] = []
        FakeProcessor.instances.append(self)

    def run(self, request: Any) -> ProcessResult:
        self.requests.append(request)
        conversion = ConversionResult(
            format="statement-json",
            report_file=Path("coverage.lcov"),
            total_pct=75.0,
        )
        return ProcessResult(
            workspace=Path("/tmp/ws"),
            workspace_kept=False,
            outcomes=[
                ComponentOutcome("web", ok=True, conversion=conversion, uploaded=True),
                ComponentOutcome("api", ok=False, reason="attestation: required field missing"),
            ],
        )


class TestProcessCommand:
    def test_requires_one_input(self) -> None:
        result = runner.invoke(cli, ["process"])

        assert result.exit_code == 1
        assert "mutually exclusive" in result.output

    def test_passes_flags_to_processor(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        FakeProcessor.instances.clear()
        monkeypatch.setattr(process_module, "Processor", FakeProcessor)
        coverage = tmp_path / "cov"
        coverage.mkdir()

        result = runner.invoke(
            cli,
            [
                "process",
                "--coverage-dir",
                str(coverage),
                "--no-upload",
                "--clone-depth",
                "0",
                "--codecov-flags",
                "e2e,nightly",
                "--codecov-token",
                "t0k",
            ],
        )

        assert result.exit_code == 0, result.output
        processor = FakeProcessor.instances[0]
        assert processor.config.upload is False
        assert processor.config.clone_depth == 0
        assert processor.config.codecov_flags == ["e2e", "nightly"]
        request = processor.requests[0]
        assert request.coverage_dir == coverage
        assert request.codecov_token == "t0k"
        assert "1 component processed, 1 failed" in result.output
