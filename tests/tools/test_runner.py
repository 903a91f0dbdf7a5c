"""Tests for external tool invocation."""

from __future__ import annotations

import subprocess
import sys

import pytest

from coverport.core.errors import InternalError, ToolError
from coverport.tools import runner as runner_module
from coverport.tools.runner import require_tool, run_tool


class TestRequireTool:
    def test_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(runner_module.shutil, "which", lambda name: None)

        with pytest.raises(ToolError) as exc_info:
            require_tool("oras", "pushing artifacts")

        assert exc_info.value.code.name == "TOOL_NOT_FOUND"
        assert "pushing artifacts" in exc_info.value.message

    def test_found(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(runner_module.shutil, "which", lambda name: f"/usr/bin/{name}")

        assert require_tool("git", "cloning") == "/usr/bin/git"


class TestRunTool:
    def test_captures_output(self) -> None:
        result = run_tool([sys.executable, "-c", "print('hello')"])

        assert result.stdout.strip() == "hello"

    def test_nonzero_exit_raises_with_output(self) -> None:
        code = "import sys; sys.stderr.write('boom'); sys.exit(3)"

        with pytest.raises(ToolError) as exc_info:
            run_tool([sys.executable, "-c", code])

        assert exc_info.value.details["returncode"] == 3
        assert exc_info.value.details["output"] == "boom"

    def test_unchecked_exit(self) -> None:
        result = run_tool([sys.executable, "-c", "raise SystemExit(2)"], check=False)

        assert result.returncode == 2

    def test_missing_executable(self) -> None:
        with pytest.raises(ToolError) as exc_info:
            run_tool(["definitely-not-a-real-binary-xyz"])

        assert exc_info.value.code.name == "TOOL_NOT_FOUND"

    def test_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_run(argv, **kwargs):
            raise subprocess.TimeoutExpired(argv, kwargs["timeout"])

        monkeypatch.setattr(runner_module.subprocess, "run", fake_run)

        with pytest.raises(InternalError) as exc_info:
            run_tool(["kubectl", "get", "pods"], timeout=5)

        assert exc_info.value.code.name == "INTERNAL_TIMEOUT"
