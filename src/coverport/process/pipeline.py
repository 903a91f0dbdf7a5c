"""Process phase: re-convert collected coverage against real sources.

Accurate path reconciliation needs the actual source layout, which is
rarely available where collection ran. For each manifest component this
resolves git provenance, checks the repository out at that commit,
converts the raw coverage with the checkout as source root, and uploads
the report.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from coverport.config.constants import (
    CODECOV_TOKEN_ENV,
    DEFAULT_PROCESS_FILTERS,
    FORMAT_COUNTERS,
)
from coverport.config.models import ProcessConfig
from coverport.core.errors import ConfigurationError, CoverportError, ManifestError
from coverport.coverage.converters.base import ConvertOptions
from coverport.coverage.converters.counters import GoToolchain
from coverport.coverage.filters import filters_for
from coverport.coverage.models import ConversionResult
from coverport.coverage.registry import get_converter, resolve_format
from coverport.manifest import CollectionManifest, ComponentRecord
from coverport.manifest import exists as manifest_exists
from coverport.manifest import load as load_manifest
from coverport.tools.codecov import CodecovUploader, UploadRequest
from coverport.tools.cosign import AttestationReader, GitMetadata
from coverport.tools.git import RepositoryCloner
from coverport.tools.oras import OrasClient

log = structlog.get_logger(__name__)

UploaderFactory = Callable[[str], CodecovUploader]


@dataclass(frozen=True, slots=True)
class ProcessRequest:
    """Inputs of one ``process`` invocation.

    Exactly one of ``coverage_dir`` and ``artifact_ref`` is set.
    """

    coverage_dir: Path | None = None
    artifact_ref: str | None = None
    workspace: Path | None = None
    image: str | None = None
    repo_url: str | None = None
    commit_sha: str | None = None
    skip_clone: bool = False
    codecov_token: str | None = None


@dataclass(frozen=True, slots=True)
class ComponentOutcome:
    name: str
    ok: bool
    reason: str | None = None
    git: GitMetadata | None = None
    conversion: ConversionResult | None = None
    uploaded: bool = False
    warnings: tuple[str, ...] = ()


@dataclass(slots=True)
class ProcessResult:
    workspace: Path
    workspace_kept: bool
    outcomes: list[ComponentOutcome] = field(default_factory=list)

    @property
    def processed(self) -> list[str]:
        return [o.name for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[ComponentOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return bool(self.processed)


def _is_within(child: Path, parent: Path) -> bool:
    return child != parent and child.is_relative_to(parent)


def check_workspace(workspace: Path, coverage_dir: Path | None, keep: bool) -> None:
    """Refuse to delete a workspace that contains (or sits in) the coverage data.

    Raises:
        ConfigurationError: Nested directories without ``keep``.
    """
    if coverage_dir is None or keep:
        return
    ws = workspace.resolve()
    cov = coverage_dir.resolve()
    if ws == cov or _is_within(cov, ws) or _is_within(ws, cov):
        raise ConfigurationError.invalid_value(
            "workspace",
            str(workspace),
            f"nested with coverage directory {coverage_dir}; use --keep-workspace "
            "or another --workspace",
        )


class Processor:
    """Runs the process phase with injectable tool wrappers."""

    def __init__(
        self,
        config: ProcessConfig,
        *,
        oras: OrasClient | None = None,
        attestations: AttestationReader | None = None,
        cloner: RepositoryCloner | None = None,
        uploader_factory: UploaderFactory = CodecovUploader,
        toolchain: GoToolchain | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.config = config
        self._oras = oras or OrasClient()
        self._attestations = attestations or AttestationReader()
        self._cloner = cloner or RepositoryCloner(timeout=config.timeout_sec)
        self._uploader_factory = uploader_factory
        self._toolchain = toolchain
        self._env = env if env is not None else dict(os.environ)

    def run(self, request: ProcessRequest) -> ProcessResult:
        """Process every component of a collection.

        Raises:
            ConfigurationError: Invalid inputs, before any I/O.
            ManifestError: The artifact or directory has no usable manifest.
            ToolError: The artifact pull failed.
        """
        if bool(request.coverage_dir) == bool(request.artifact_ref):
            raise ConfigurationError.conflict(["--coverage-dir", "--artifact-ref"])

        keep = self.config.keep_workspace
        if request.workspace is not None:
            request.workspace.mkdir(parents=True, exist_ok=True)
            workspace = request.workspace
        else:
            workspace = Path(tempfile.mkdtemp(prefix="coverport-process-"))
        try:
            check_workspace(workspace, request.coverage_dir, keep)
        except ConfigurationError:
            if request.workspace is None:
                shutil.rmtree(workspace, ignore_errors=True)
            raise

        result = ProcessResult(workspace=workspace, workspace_kept=keep)
        try:
            coverage_dir = request.coverage_dir
            if request.artifact_ref:
                coverage_dir = self._oras.pull(request.artifact_ref, workspace / "coverage-raw")
            assert coverage_dir is not None

            manifest, components = self._components(coverage_dir, request)
            log.info(
                "process.started",
                test_name=manifest.test_name if manifest else None,
                components=len(components),
                workspace=str(workspace),
            )
            for record in components:
                label = f"{manifest.test_name}-{record.name}" if manifest else None
                outcome = self._process_component(
                    record,
                    coverage_dir / record.coverage_dir,
                    workspace / record.name,
                    request,
                    label,
                )
                result.outcomes.append(outcome)
        finally:
            if not keep:
                shutil.rmtree(workspace, ignore_errors=True)
        return result

    def _components(
        self, coverage_dir: Path, request: ProcessRequest
    ) -> tuple[CollectionManifest | None, list[ComponentRecord]]:
        if manifest_exists(coverage_dir):
            manifest = load_manifest(coverage_dir)
            if not manifest.components:
                raise ManifestError.invalid(str(coverage_dir), "no components recorded")
            return manifest, list(manifest.components)

        # Single component directory without a manifest
        if not request.image and not (request.repo_url and request.commit_sha):
            raise ConfigurationError.missing_required(
                "--image or --repo-url/--commit-sha",
                f"{coverage_dir} has no metadata.json",
            )
        record = ComponentRecord(
            name=coverage_dir.resolve().name or "component",
            image=request.image,
            coverage_dir=".",
        )
        return None, [record]

    def _git_metadata(self, record: ComponentRecord, request: ProcessRequest) -> GitMetadata:
        if request.repo_url and request.commit_sha:
            return GitMetadata(repo_url=request.repo_url, commit_sha=request.commit_sha)
        if not record.image:
            raise ConfigurationError.missing_required(
                "--repo-url/--commit-sha", f"component {record.name} has no image"
            )
        return self._attestations.git_metadata(record.image)

    def _process_component(
        self,
        record: ComponentRecord,
        component_dir: Path,
        component_ws: Path,
        request: ProcessRequest,
        label: str | None,
    ) -> ComponentOutcome:
        with structlog.contextvars.bound_contextvars(component=record.name):
            warnings: list[str] = []
            git: GitMetadata | None = None
            try:
                fmt = resolve_format(self.config.format, component_dir)
                converter = get_converter(fmt, toolchain=self._toolchain)
                converter.check_prerequisites()

                git = self._git_metadata(record, request)
                repo_dir = component_ws / "repo"
                if request.skip_clone:
                    if not repo_dir.is_dir():
                        raise ConfigurationError.invalid_value(
                            "--skip-clone", True, f"repository directory not found: {repo_dir}"
                        )
                else:
                    self._cloner.clone(
                        git.repo_url,
                        repo_dir,
                        commit_sha=git.commit_sha,
                        branch=git.branch,
                        depth=self.config.clone_depth,
                    )

                conversion = converter.convert(
                    component_dir,
                    ConvertOptions(
                        label=label,
                        source_root=repo_dir,
                        filters=filters_for(fmt, self.config.filters, DEFAULT_PROCESS_FILTERS),
                        html=fmt == FORMAT_COUNTERS,
                    ),
                )
            except CoverportError as e:
                log.warning("process.component_failed", error=e.error_name, reason=e.message)
                return ComponentOutcome(record.name, ok=False, reason=e.message, git=git)

            uploaded = False
            if self.config.upload:
                uploaded = self._upload(conversion, git, repo_dir, request, warnings)
            log.info(
                "process.component_done",
                format=conversion.format,
                total_pct=conversion.total_pct,
                uploaded=uploaded,
            )
            return ComponentOutcome(
                record.name,
                ok=True,
                git=git,
                conversion=conversion,
                uploaded=uploaded,
                warnings=tuple(warnings),
            )

    def _upload(
        self,
        conversion: ConversionResult,
        git: GitMetadata,
        repo_dir: Path,
        request: ProcessRequest,
        warnings: list[str],
    ) -> bool:
        token = request.codecov_token or self._env.get(CODECOV_TOKEN_ENV)
        if not token:
            log.warning(
                "process.upload_skipped",
                reason=f"no token (--codecov-token or {CODECOV_TOKEN_ENV})",
            )
            warnings.append("upload skipped: no codecov token")
            return False

        # The uploader only sees files inside the repository
        report = repo_dir / conversion.report_file.name
        shutil.copyfile(conversion.report_file, report)
        uploader = self._uploader_factory(token)
        try:
            uploader.upload(
                UploadRequest(
                    coverage_file=report,
                    commit_sha=git.commit_sha,
                    repo_root=repo_dir,
                    repo_url=git.repo_url,
                    branch=git.branch,
                    flags=tuple(self.config.codecov_flags),
                    name=self.config.codecov_name,
                )
            )
        except CoverportError as e:
            log.warning("process.upload_failed", error=e.error_name, reason=e.message)
            warnings.append(f"upload failed: {e.message}")
            return False
        finally:
            uploader.close()
        return True
