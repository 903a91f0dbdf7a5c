"""Tests for publishing collection output."""

from __future__ import annotations

from pathlib import Path

import pytest

from coverport.collect.push import artifact_title, push_collection
from coverport.config.constants import ARTIFACT_REF_ENV
from coverport.config.models import PushConfig
from coverport.core.errors import ConfigurationError
from coverport.manifest import CollectionManifest, ComponentRecord
from coverport.tools.oras import OrasClient


class FakeOras(OrasClient):
    def __init__(self) -> None:
        super().__init__("oras")
        self.pushed: list[tuple[Path, str, dict[str, str], str | None]] = []

    def push(self, directory, ref, *, annotations=None, expires_after=None):
        self.pushed.append((directory, ref, dict(annotations or {}), expires_after))
        return ref


@pytest.fixture
def collection() -> CollectionManifest:
    m = CollectionManifest(test_name="e2e")
    m.add_component(ComponentRecord(name="web", coverage_dir="web/e2e-web"))
    m.add_component(ComponentRecord(name="web", coverage_dir="web/e2e-web-web-2"))
    m.add_component(ComponentRecord(name="api", coverage_dir="api/e2e-api"))
    return m


class TestArtifactTitle:
    def test_lists_unique_components(self, collection: CollectionManifest) -> None:
        assert artifact_title(collection) == "Coverage data for: web, api"

    def test_configured_title_wins(self, collection: CollectionManifest) -> None:
        assert artifact_title(collection, "nightly") == "nightly"


class TestPushCollection:
    def test_pushes_output_dir(
        self, tmp_path: Path, collection: CollectionManifest, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ref_file = tmp_path / "ref"
        monkeypatch.setenv(ARTIFACT_REF_ENV, str(ref_file))
        oras = FakeOras()
        config = PushConfig(enabled=True, repository="org/coverage", tag="t1", expires_after="7d")

        ref = push_collection(tmp_path, collection, config, client=oras)

        assert ref == "quay.io/org/coverage:t1"
        directory, pushed_ref, annotations, expires = oras.pushed[0]
        assert directory == tmp_path
        assert pushed_ref == ref
        assert expires == "7d"
        assert annotations["org.opencontainers.image.title"] == "Coverage data for: web, api"
        assert "e2e" in annotations["org.opencontainers.image.description"]
        assert ref_file.read_text() == ref

    def test_default_tag_uses_test_name(
        self, tmp_path: Path, collection: CollectionManifest, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv(ARTIFACT_REF_ENV, raising=False)
        oras = FakeOras()
        config = PushConfig(repository="org/coverage")

        ref = push_collection(tmp_path, collection, config, client=oras)

        assert ref.startswith("quay.io/org/coverage:e2e-")

    def test_repository_required(self, tmp_path: Path, collection: CollectionManifest) -> None:
        with pytest.raises(ConfigurationError):
            push_collection(tmp_path, collection, PushConfig(), client=FakeOras())
