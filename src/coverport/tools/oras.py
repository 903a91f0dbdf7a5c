"""OCI artifact push/pull via the ``oras`` CLI.

Contract: directory in, artifact reference out (push); reference in,
directory out (pull).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path

import structlog

from coverport.config.constants import ARTIFACT_REF_ENV, MANIFEST_FILENAME
from coverport.core.errors import ManifestError, PayloadError
from coverport.tools.runner import require_tool, run_tool

log = structlog.get_logger(__name__)

ARTIFACT_TYPE = "application/vnd.coverport.coverage.v1"
EXPIRES_ANNOTATION = "quay.expires-after"


def default_tag(test_name: str, now: datetime | None = None) -> str:
    """``<test_name>-<YYYYMMDD-HHMMSS>``, safe for use as an OCI tag."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")
    tag = f"{test_name}-{stamp}"
    cleaned = "".join(c if c.isalnum() or c in "._-" else "-" for c in tag)
    return cleaned.lstrip(".-")[:128]


def artifact_ref(registry: str, repository: str, tag: str) -> str:
    return f"{registry.rstrip('/')}/{repository.strip('/')}:{tag}"


def write_ref_file(ref: str, env: Mapping[str, str] | None = None) -> Path | None:
    """Write the reference to ``$COVERAGE_ARTIFACT_REF_FILE`` when set."""
    target = (env if env is not None else os.environ).get(ARTIFACT_REF_ENV)
    if not target:
        return None
    path = Path(target)
    path.write_text(ref)
    return path


class OrasClient:
    def __init__(self, oras: str | None = None, *, timeout: float = 600.0) -> None:
        self._oras = oras
        self._timeout = timeout

    @property
    def oras(self) -> str:
        if self._oras is None:
            self._oras = require_tool("oras", "OCI artifact push/pull")
        return self._oras

    def push(
        self,
        directory: Path,
        ref: str,
        *,
        annotations: Mapping[str, str] | None = None,
        expires_after: str | None = None,
    ) -> str:
        """Push every top-level entry of ``directory`` as one artifact.

        Raises:
            PayloadError: The directory is empty.
            ToolError: oras failed.
        """
        entries = sorted(p.name for p in directory.iterdir() if not p.name.startswith("."))
        if not entries:
            raise PayloadError.empty(str(directory))
        args: list[str] = [self.oras, "push", ref, "--artifact-type", ARTIFACT_TYPE]
        merged = dict(annotations or {})
        if expires_after:
            merged[EXPIRES_ANNOTATION] = expires_after
        for key, value in merged.items():
            args += ["--annotation", f"{key}={value}"]
        args += entries
        log.info("oras.push", ref=ref, entries=len(entries))
        run_tool(args, cwd=directory, timeout=self._timeout)
        return ref

    def pull(self, ref: str, directory: Path) -> Path:
        """Pull an artifact into ``directory``; it must contain a manifest.

        Raises:
            ToolError: oras failed.
            ManifestError: The artifact holds no ``metadata.json``.
        """
        directory.mkdir(parents=True, exist_ok=True)
        log.info("oras.pull", ref=ref, target=str(directory))
        run_tool([self.oras, "pull", ref], cwd=directory, timeout=self._timeout)
        if not (directory / MANIFEST_FILENAME).is_file():
            raise ManifestError.not_found(f"{ref} ({MANIFEST_FILENAME})")
        return directory
