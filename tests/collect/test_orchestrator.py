"""Tests for the collection orchestrator."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import pytest

from coverport.collect.orchestrator import (
    Collector,
    TargetState,
    default_test_name,
    unit_directories,
)
from coverport.config.models import CollectConfig
from coverport.core.errors import ToolError, TransportError
from coverport.coverage.models import CoveragePayload
from coverport.discovery.models import ResolvedTarget


def statement_doc(*paths: str) -> bytes:
    return json.dumps(
        {
            p: {
                "path": p,
                "statementMap": {"0": {"start": {"line": 1, "column": 0}, "end": {"line": 1}}},
                "s": {"0": 1},
            }
            for p in paths
        }
    ).encode()


def pod_target(name: str, component: str, namespace: str = "demo") -> ResolvedTarget:
    return ResolvedTarget(
        display_name=f"{namespace}/{name}",
        component_name=component,
        namespace=namespace,
        pod_name=name,
        container_name="main",
        image=f"quay.io/org/{component}:v1",
    )


class FakeSession:
    def __init__(self, behavior: dict, target: ResolvedTarget) -> None:
        self.behavior = behavior
        self.target = target
        self.reset_calls = 0

    def reset(self) -> None:
        self.reset_calls += 1
        if self.behavior.get("reset_fails"):
            raise TransportError.bad_status("http://x/coverage/reset", 404)

    def collect(self, label: str) -> CoveragePayload:
        if error := self.behavior.get("collect_error"):
            raise error
        raw = self.behavior.get("raw", statement_doc("/app/a.js"))
        return CoveragePayload(label, datetime.now(UTC), "statement-json", raw)


class SessionFactory:
    """Stands in for open_session; behavior keyed by pod name."""

    def __init__(self, behaviors: dict[str, dict]) -> None:
        self.behaviors = behaviors
        self.opened: list[str] = []
        self.closed: list[str] = []

    @contextmanager
    def __call__(
        self, target: ResolvedTarget, port: int, timeout: float, **kwargs
    ) -> Iterator[FakeSession]:
        key = target.pod_name or target.display_name
        behavior = self.behaviors.get(key, {})
        self.opened.append(key)
        try:
            if error := behavior.get("connect_error"):
                raise error
            yield FakeSession(behavior, target)
        finally:
            self.closed.append(key)


@pytest.fixture
def config(tmp_path: Path) -> CollectConfig:
    return CollectConfig(
        output_dir=tmp_path / "out", source_dir=tmp_path / "src", remap_paths=False
    )


class TestHelpers:
    def test_default_test_name(self) -> None:
        name = default_test_name(datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC))

        assert name == "coverage-20240102-030405"

    def test_unit_directories_disambiguate_duplicates(self) -> None:
        targets = [
            pod_target("web-1", "web"),
            pod_target("web-2", "web"),
            pod_target("api-1", "api"),
        ]

        dirs = unit_directories(targets, "e2e")

        assert dirs[0] == Path("web/e2e-web")
        assert dirs[1] != dirs[0]
        assert dirs[1].parent == Path("web")
        assert "web-2" in dirs[1].name
        assert dirs[2] == Path("api/e2e-api")


class TestCollector:
    def test_partial_failure_still_succeeds(self, config: CollectConfig) -> None:
        """Three targets, the second fails at collect: two records, run ok."""
        targets = [
            pod_target("a-1", "alpha"),
            pod_target("b-1", "beta"),
            pod_target("c-1", "gamma"),
        ]
        sessions = SessionFactory(
            {"b-1": {"collect_error": TransportError.unreachable("http://b", 5)}}
        )

        result = Collector(config, session_factory=sessions).run(targets, test_name="e2e")

        assert result.ok
        assert result.succeeded == ["alpha", "gamma"]
        assert [f.name for f in result.failed] == ["beta"]
        assert result.failed[0].state == TargetState.COLLECTING
        assert result.failed[0].soft
        assert sessions.closed == ["a-1", "b-1", "c-1"]

        data = json.loads((config.output_dir / "metadata.json").read_text())
        assert [c["name"] for c in data["components"]] == ["alpha", "gamma"]
        assert (config.output_dir / "alpha" / "e2e-alpha" / "coverage_e2e-alpha.json").is_file()

    def test_all_failures_fail_the_run(self, config: CollectConfig) -> None:
        targets = [pod_target("a-1", "alpha")]
        sessions = SessionFactory(
            {"a-1": {"connect_error": TransportError.tunnel_failed("demo/a-1", "gone")}}
        )

        result = Collector(config, session_factory=sessions).run(targets, test_name="e2e")

        assert not result.ok
        assert result.failed[0].state == TargetState.CONNECTING
        assert not result.failed[0].soft
        assert result.manifest is not None and result.manifest.components == []

    def test_reset_failure_is_warning(self, tmp_path: Path) -> None:
        config = CollectConfig(output_dir=tmp_path, reset=True, auto_process=False)
        sessions = SessionFactory({"a-1": {"reset_fails": True}})

        result = Collector(config, session_factory=sessions).run(
            [pod_target("a-1", "alpha")], test_name="e2e"
        )

        assert result.ok
        assert any("reset failed" in w for w in result.outcomes[0].warnings)

    def test_malformed_payload_fails_target(self, config: CollectConfig) -> None:
        sessions = SessionFactory({"a-1": {"raw": b"[not json"}})

        result = Collector(config, session_factory=sessions).run(
            [pod_target("a-1", "alpha")], test_name="e2e"
        )

        assert not result.ok
        assert result.failed[0].state == TargetState.PERSISTING

    def test_malformed_branch_map_costs_only_reports(self, config: CollectConfig) -> None:
        """The second of three targets sends branch locations as an object."""
        broken = {
            "/app/b.js": {
                "path": "/app/b.js",
                "statementMap": {"0": {"start": {"line": 1}, "end": {"line": 1}}},
                "s": {"0": 1},
                "branchMap": {"0": {"type": "if", "locations": {"x": 1}}},
                "b": {"0": [1, 0]},
            }
        }
        targets = [
            pod_target("a-1", "alpha"),
            pod_target("b-1", "beta"),
            pod_target("c-1", "gamma"),
        ]
        sessions = SessionFactory({"b-1": {"raw": json.dumps(broken).encode()}})

        result = Collector(config, session_factory=sessions).run(targets, test_name="e2e")

        assert result.ok
        assert result.succeeded == ["alpha", "beta", "gamma"]
        beta = result.outcomes[1]
        assert beta.conversion is None
        assert any("locations must be a list" in w for w in beta.warnings)
        data = json.loads((config.output_dir / "metadata.json").read_text())
        assert [c["name"] for c in data["components"]] == ["alpha", "beta", "gamma"]

    def test_unexpected_error_fails_only_that_target(self, config: CollectConfig) -> None:
        targets = [
            pod_target("a-1", "alpha"),
            pod_target("b-1", "beta"),
            pod_target("c-1", "gamma"),
        ]
        sessions = SessionFactory({"b-1": {"collect_error": RuntimeError("boom")}})

        result = Collector(config, session_factory=sessions).run(targets, test_name="e2e")

        assert result.ok
        assert result.succeeded == ["alpha", "gamma"]
        assert result.failed[0].name == "beta"
        assert result.failed[0].state == TargetState.COLLECTING
        assert "boom" in result.failed[0].reason
        assert sessions.closed == ["a-1", "b-1", "c-1"]
        assert (config.output_dir / "metadata.json").is_file()

    def test_conversion_failure_keeps_raw_data(self, config: CollectConfig) -> None:
        class BrokenConverter:
            format_id = "statement-json"

            def persist(self, payload, directory):
                directory.mkdir(parents=True, exist_ok=True)
                (directory / "raw.json").write_bytes(payload.raw)
                return [directory / "raw.json"]

            def convert(self, directory, options):
                raise ToolError.failed("go", 1, "boom")

            def check_prerequisites(self):
                return None

        result = Collector(
            config,
            session_factory=SessionFactory({}),
            converter_factory=lambda fmt: BrokenConverter(),
        ).run([pod_target("a-1", "alpha")], test_name="e2e")

        assert result.ok
        assert result.outcomes[0].state == TargetState.DONE
        assert result.outcomes[0].conversion is None
        assert any("conversion failed" in w for w in result.outcomes[0].warnings)

    def test_expected_format_mismatch(self, tmp_path: Path) -> None:
        config = CollectConfig(output_dir=tmp_path, format="go", auto_process=False)

        result = Collector(config, session_factory=SessionFactory({})).run(
            [pod_target("a-1", "alpha")], test_name="e2e"
        )

        assert not result.ok
        assert "expected counters-binary" in result.failed[0].reason

    def test_workers_keep_manifest_order(self, config: CollectConfig) -> None:
        config = config.model_copy(update={"workers": 3})
        targets = [pod_target(f"p-{i}", f"comp{i}") for i in range(5)]

        result = Collector(config, session_factory=SessionFactory({})).run(targets, test_name="e2e")

        assert result.manifest is not None
        assert [c.name for c in result.manifest.components] == [f"comp{i}" for i in range(5)]

    def test_no_targets(self, config: CollectConfig) -> None:
        result = Collector(config, session_factory=SessionFactory({})).run([], test_name="e2e")

        assert not result.ok
        assert result.manifest_path is None

    def test_snapshot_components_end_to_end(self, tmp_path: Path) -> None:
        """Two snapshot components, both collected and converted against local sources."""
        source = tmp_path / "src"
        for rel in ("frontend/src/app.js", "backend/lib/server.js"):
            (source / rel).parent.mkdir(parents=True, exist_ok=True)
            (source / rel).write_text("")
        config = CollectConfig(output_dir=tmp_path / "out", source_dir=source)
        targets = [pod_target("fe-1", "frontend"), pod_target("be-1", "backend")]
        sessions = SessionFactory(
            {
                "fe-1": {"raw": statement_doc("/usr/src/app/src/app.js")},
                "be-1": {"raw": statement_doc("/opt/backend/lib/server.js")},
            }
        )

        result = Collector(config, session_factory=sessions).run(
            targets, test_name="release", namespace="demo"
        )

        assert result.succeeded == ["frontend", "backend"]
        root = source.resolve()
        fe_dir = config.output_dir / "frontend" / "release-frontend"
        fe_lcov = fe_dir / "coverage_release-frontend.lcov"
        assert f"SF:{root}/frontend/src/app.js" in fe_lcov.read_text()
        manifest = json.loads((config.output_dir / "metadata.json").read_text())
        assert manifest["collection_params"]["namespace"] == "demo"
        assert manifest["collection_params"]["format"] == "statement-json"
        assert manifest["components"][1]["pod_name"] == "be-1"
