"""Collection manifest (``<output_dir>/metadata.json``).

Owned by the collector during a run and written once at the end; the
process phase only reads it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from coverport.config.constants import MANIFEST_FILENAME, MANIFEST_VERSION
from coverport.core.errors import ManifestError


def utc_now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class _ManifestModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _empty_to_none(cls, v: object) -> object:
        return None if v == "" else v


class CollectionParams(_ManifestModel):
    coverage_port: int | None = None
    filters: list[str] = Field(default_factory=list)
    format: str | None = None
    namespace: str | None = None


class ComponentRecord(_ManifestModel):
    """Provenance and artifact location of one collected component.

    ``coverage_dir`` is relative to the manifest's directory.
    """

    name: str
    image: str | None = None
    coverage_dir: str
    namespace: str | None = None
    pod_name: str | None = None
    container_name: str | None = None
    collected_at: str = Field(default_factory=utc_now)


class CollectionManifest(_ManifestModel):
    version: str = MANIFEST_VERSION
    test_name: str
    collected_at: str = Field(default_factory=utc_now)
    collection_params: CollectionParams = Field(default_factory=CollectionParams)
    components: list[ComponentRecord] = Field(default_factory=list)

    def add_component(self, record: ComponentRecord) -> None:
        self.components.append(record)

    def component_dir(self, base: Path, record: ComponentRecord) -> Path:
        return base / record.coverage_dir

    def save(self, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / MANIFEST_FILENAME
        path.write_text(self.model_dump_json(indent=2, exclude_none=True) + "\n")
        return path


def manifest_path(directory: Path) -> Path:
    return directory / MANIFEST_FILENAME


def exists(directory: Path) -> bool:
    return manifest_path(directory).is_file()


def load(directory: Path) -> CollectionManifest:
    """Read the manifest from a coverage directory.

    Raises:
        ManifestError: File missing or not a valid manifest.
    """
    path = manifest_path(directory)
    if not path.is_file():
        raise ManifestError.not_found(str(path))
    try:
        return CollectionManifest.model_validate_json(path.read_text())
    except (OSError, ValidationError) as e:
        raise ManifestError.invalid(str(path), str(e)) from e
