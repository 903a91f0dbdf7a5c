"""Thin wrappers around external command-line tools.

Every integration with kubectl, go, oras, git, cosign and codecov goes
through ``run_tool`` so failures surface uniformly as ``ToolError``.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

import structlog

from coverport.core.errors import InternalError, ToolError

log = structlog.get_logger(__name__)


def require_tool(name: str, purpose: str) -> str:
    """Resolve a tool on PATH.

    Returns:
        Absolute path of the executable.

    Raises:
        ToolError: If the tool is not installed.
    """
    path = shutil.which(name)
    if path is None:
        raise ToolError.not_found(name, purpose)
    return path


def run_tool(
    args: Sequence[str | Path],
    *,
    cwd: Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run a tool and capture its output as text.

    Args:
        args: Command line; the first element is the executable.
        cwd: Working directory.
        timeout: Seconds before the process is killed.
        env: Full environment for the child, inherited when None.
        check: Raise on non-zero exit.

    Raises:
        ToolError: Executable missing, or non-zero exit when ``check`` is set.
        InternalError: The timeout elapsed.
    """
    argv = [str(a) for a in args]
    tool = Path(argv[0]).name
    log.debug("tool.run", tool=tool, args=argv[1:], cwd=str(cwd) if cwd else None)
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            cwd=cwd,
            timeout=timeout,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise ToolError.not_found(tool, "this operation") from e
    except subprocess.TimeoutExpired as e:
        raise InternalError.timeout(f"{tool} {' '.join(argv[1:3])}".strip(), timeout or 0) from e

    if check and result.returncode != 0:
        output = (result.stderr or result.stdout or "").strip()
        log.debug("tool.failed", tool=tool, returncode=result.returncode)
        raise ToolError.failed(tool, result.returncode, output)
    return result
