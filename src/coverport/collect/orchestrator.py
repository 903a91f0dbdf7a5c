"""Collection orchestrator.

Drives one unit of work per resolved target::

    RESOLVED -> CONNECTING -> (RESETTING) -> COLLECTING -> PERSISTING
             -> CONVERTING -> DONE | FAILED

A failed target never aborts the run. The manifest gets one record per
DONE target and is written once, after every target has been attempted.
The run fails only when no target succeeded.
"""

from __future__ import annotations

import contextvars
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

import structlog

from coverport.config.constants import (
    DEFAULT_COLLECT_FILTERS,
    DEFAULT_COVERAGE_PORT,
)
from coverport.config.models import CollectConfig
from coverport.core.errors import CoverportError, InternalError, PayloadError, ToolError
from coverport.coverage.converters.base import ConvertOptions, CoverageConverter
from coverport.coverage.filters import filters_for
from coverport.coverage.models import ConversionResult
from coverport.coverage.registry import get_converter, resolve_format
from coverport.discovery.models import ResolvedTarget
from coverport.manifest import CollectionManifest, CollectionParams, ComponentRecord
from coverport.transport.session import Session, open_session

log = structlog.get_logger(__name__)

SessionFactory = Callable[..., AbstractContextManager[Session]]
ConverterFactory = Callable[[str], CoverageConverter]


class TargetState(StrEnum):
    RESOLVED = "resolved"
    CONNECTING = "connecting"
    RESETTING = "resetting"
    COLLECTING = "collecting"
    PERSISTING = "persisting"
    CONVERTING = "converting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TargetFailure:
    name: str
    target: str
    state: TargetState
    reason: str
    soft: bool = False


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    """Result of one unit of work."""

    target: ResolvedTarget
    state: TargetState
    record: ComponentRecord | None = None
    conversion: ConversionResult | None = None
    failure: TargetFailure | None = None
    warnings: tuple[str, ...] = ()


def _failed(
    target: ResolvedTarget,
    state: TargetState,
    reason: str,
    warnings: list[str],
    *,
    soft: bool = False,
) -> TargetOutcome:
    return TargetOutcome(
        target=target,
        state=TargetState.FAILED,
        failure=TargetFailure(
            name=target.component_name,
            target=target.display_name,
            state=state,
            reason=reason,
            soft=soft,
        ),
        warnings=tuple(warnings),
    )


@dataclass(slots=True)
class CollectionResult:
    """Summary of a collect run."""

    test_name: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[TargetFailure] = field(default_factory=list)
    outcomes: list[TargetOutcome] = field(default_factory=list)
    manifest: CollectionManifest | None = None
    manifest_path: Path | None = None
    artifact_ref: str | None = None

    @property
    def ok(self) -> bool:
        return len(self.succeeded) > 0


def default_test_name(now: datetime | None = None) -> str:
    return "coverage-" + (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")


def unit_directories(targets: Sequence[ResolvedTarget], test_name: str) -> list[Path]:
    """Relative output directory per target, ``<component>/<test>-<component>``.

    Targets sharing a component name get the pod name appended so their
    artifacts never overlap.
    """
    seen: dict[str, int] = {}
    dirs = []
    for target in targets:
        component = target.component_name
        count = seen.get(component, 0)
        seen[component] = count + 1
        leaf = f"{test_name}-{component}"
        if count:
            leaf = f"{leaf}-{target.pod_name or count}"
        dirs.append(Path(component) / leaf)
    return dirs


class Collector:
    """Runs collection over resolved targets.

    Args:
        config: Per-invocation collect settings.
        session_factory: Opens a session to a target; defaults to
            ``open_session``.
        converter_factory: Format id -> converter.
    """

    def __init__(
        self,
        config: CollectConfig,
        *,
        session_factory: SessionFactory = open_session,
        converter_factory: ConverterFactory = get_converter,
    ) -> None:
        self.config = config
        self._open_session = session_factory
        self._converter = converter_factory
        self._lock = threading.Lock()

    def check_prerequisites(self) -> None:
        """Fail before any network activity if a required tool is missing.

        Only applies when the expected format is configured explicitly.
        """
        if self.config.format == "auto" or not self.config.auto_process:
            return
        fmt = resolve_format(self.config.format)
        self._converter(fmt).check_prerequisites()

    def run(
        self,
        targets: Sequence[ResolvedTarget],
        *,
        test_name: str | None = None,
        namespace: str | None = None,
    ) -> CollectionResult:
        test_name = test_name or self.config.test_name or default_test_name()
        output_dir = self.config.output_dir
        manifest = CollectionManifest(
            test_name=test_name,
            collection_params=CollectionParams(
                coverage_port=self._port_for(targets),
                filters=list(self.config.filters),
                format=self.config.format,
                namespace=namespace,
            ),
        )
        result = CollectionResult(test_name=test_name, manifest=manifest)
        if not targets:
            log.warning("collect.no_targets")
            return result

        self.check_prerequisites()
        deadline = time.monotonic() + self.config.timeout_sec
        dirs = unit_directories(targets, test_name)
        order = {id(t): i for i, t in enumerate(targets)}
        outcomes: list[TargetOutcome] = []

        def unit(target: ResolvedTarget, rel_dir: Path) -> None:
            outcome = self._collect_one(target, rel_dir, test_name, deadline)
            with self._lock:
                outcomes.append(outcome)
                if outcome.record is not None:
                    manifest.add_component(outcome.record)

        if self.config.workers > 1 and len(targets) > 1:
            workers = min(self.config.workers, len(targets))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="collect") as pool:
                futures = [
                    pool.submit(contextvars.copy_context().run, unit, target, rel_dir)
                    for target, rel_dir in zip(targets, dirs, strict=True)
                ]
                for future in futures:
                    future.result()
        else:
            for target, rel_dir in zip(targets, dirs, strict=True):
                unit(target, rel_dir)

        outcomes.sort(key=lambda o: order[id(o.target)])
        record_order = {o.record.coverage_dir: i for i, o in enumerate(outcomes) if o.record}
        manifest.components.sort(key=lambda r: record_order[r.coverage_dir])
        formats = sorted({o.conversion.format for o in outcomes if o.conversion})
        if self.config.format == "auto" and formats:
            manifest.collection_params.format = ",".join(formats)

        result.outcomes = outcomes
        result.succeeded = [
            o.target.component_name for o in outcomes if o.state == TargetState.DONE
        ]
        result.failed = [o.failure for o in outcomes if o.failure is not None]
        result.manifest_path = manifest.save(output_dir)
        log.info(
            "collect.finished",
            test_name=test_name,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
            manifest=str(result.manifest_path),
        )
        return result

    def _port_for(self, targets: Sequence[ResolvedTarget]) -> int | None:
        if targets and all(not t.is_cluster for t in targets):
            return None
        return self.config.port or DEFAULT_COVERAGE_PORT

    def _collect_one(
        self, target: ResolvedTarget, rel_dir: Path, test_name: str, deadline: float
    ) -> TargetOutcome:
        with structlog.contextvars.bound_contextvars(
            component=target.component_name,
            namespace=target.namespace,
            pod=target.pod_name,
        ):
            state = TargetState.RESOLVED
            warnings: list[str] = []
            label = f"{test_name}-{target.component_name}"
            unit_dir = self.config.output_dir / rel_dir
            conversion: ConversionResult | None = None
            try:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise InternalError.timeout("collection run", self.config.timeout_sec)

                state = TargetState.CONNECTING
                with self._open_session(
                    target,
                    self.config.port,
                    remaining,
                    health_attempts=self.config.health_attempts,
                    health_interval_sec=self.config.health_interval_sec,
                ) as session:
                    if self.config.reset:
                        state = TargetState.RESETTING
                        try:
                            session.reset()
                        except CoverportError as e:
                            log.warning("collect.reset_failed", error=e.message)
                            warnings.append(f"reset failed: {e.message}")

                    state = TargetState.COLLECTING
                    payload = session.collect(label)

                state = TargetState.PERSISTING
                self._check_expected_format(payload.format, label)
                converter = self._converter(payload.format)
                converter.persist(payload, unit_dir)

                if self.config.auto_process and not self.config.skip_generate:
                    state = TargetState.CONVERTING
                    conversion = self._convert(converter, unit_dir, label, warnings)
            except CoverportError as e:
                log.warning(
                    "collect.target_failed",
                    state=state.value,
                    error=e.error_name,
                    reason=e.message,
                )
                soft = bool(getattr(e, "soft", False))
                return _failed(target, state, e.message, warnings, soft=soft)
            except Exception as e:
                # Unexpected errors still cost only this target
                log.exception("collect.target_crashed", state=state.value)
                return _failed(target, state, f"unexpected error: {e!r}", warnings)

            record = ComponentRecord(
                name=target.component_name,
                image=target.image,
                coverage_dir=rel_dir.as_posix(),
                namespace=target.namespace,
                pod_name=target.pod_name,
                container_name=target.container_name,
            )
            log.info("collect.target_done", coverage_dir=record.coverage_dir)
            return TargetOutcome(
                target=target,
                state=TargetState.DONE,
                record=record,
                conversion=conversion,
                warnings=tuple(warnings),
            )

    def _check_expected_format(self, fmt: str, label: str) -> None:
        if self.config.format == "auto":
            return
        expected = resolve_format(self.config.format)
        if fmt != expected:
            raise PayloadError.malformed(label, f"expected {expected} payload, got {fmt}")

    def _convert(
        self,
        converter: CoverageConverter,
        unit_dir: Path,
        label: str,
        warnings: list[str],
    ) -> ConversionResult | None:
        """Convert right after collection; failures only cost the reports.

        The raw payload is already on disk, so the process phase can
        retry conversion against a real checkout.
        """
        options = ConvertOptions(
            label=label,
            source_root=self.config.source_dir if self.config.remap_paths else None,
            filters=filters_for(
                converter.format_id, self.config.filters, DEFAULT_COLLECT_FILTERS
            ),
            remap_paths=self.config.remap_paths,
            skip_filter=self.config.skip_filter,
        )
        try:
            return converter.convert(unit_dir, options)
        except (PayloadError, ToolError) as e:
            log.warning("collect.convert_failed", error=e.error_name, reason=e.message)
            warnings.append(f"conversion failed: {e.message}")
            return None
