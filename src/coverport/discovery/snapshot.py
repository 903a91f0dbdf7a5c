"""Snapshot manifests: a declared set of components and their images."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coverport.core.errors import ConfigurationError
from coverport.discovery.images import normalize_image_ref
from coverport.discovery.models import BySnapshot, SnapshotEntry


class GitSource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = ""
    revision: str = ""


class ComponentSource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    git: GitSource | None = None


class SnapshotComponent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    container_image: str = Field(alias="containerImage")
    source: ComponentSource | None = None


class Snapshot(BaseModel):
    """Component list as emitted by the release pipeline."""

    model_config = ConfigDict(extra="ignore")

    components: list[SnapshotComponent] = Field(default_factory=list)

    def images(self) -> list[str]:
        """Container images in declared order."""
        return [c.container_image for c in self.components]

    def component_for_image(self, image: str) -> SnapshotComponent | None:
        """Find the component whose image matches, ignoring tag and digest."""
        wanted = normalize_image_ref(image)
        for component in self.components:
            if normalize_image_ref(component.container_image) == wanted:
                return component
        return None

    def to_descriptor(self) -> BySnapshot:
        return BySnapshot(
            components=tuple(
                SnapshotEntry(name=c.name, image_ref=c.container_image) for c in self.components
            )
        )


def parse_snapshot(text: str, *, source: str = "<inline>") -> Snapshot:
    """Parse snapshot JSON.

    Raises:
        ConfigurationError: Invalid JSON, wrong shape, or no components.
    """
    try:
        snapshot = Snapshot.model_validate(json.loads(text))
    except json.JSONDecodeError as e:
        raise ConfigurationError.parse_error(source, f"invalid JSON: {e}") from e
    except ValidationError as e:
        raise ConfigurationError.parse_error(source, str(e.errors()[0]["msg"])) from e
    if not snapshot.components:
        raise ConfigurationError.parse_error(source, "snapshot has no components")
    return snapshot


def parse_snapshot_file(path: Path) -> Snapshot:
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigurationError.parse_error(str(path), e.strerror or str(e)) from e
    return parse_snapshot(text, source=str(path))
