"""Publishing a collection run as an OCI artifact."""

from __future__ import annotations

from pathlib import Path

import structlog

from coverport.config.models import PushConfig
from coverport.core.errors import ConfigurationError
from coverport.manifest import CollectionManifest, utc_now
from coverport.tools.oras import OrasClient, artifact_ref, default_tag, write_ref_file

log = structlog.get_logger(__name__)


def artifact_title(manifest: CollectionManifest, configured: str | None = None) -> str:
    if configured:
        return configured
    names = list(dict.fromkeys(c.name for c in manifest.components))
    return "Coverage data for: " + ", ".join(names)


def push_collection(
    output_dir: Path,
    manifest: CollectionManifest,
    config: PushConfig,
    *,
    client: OrasClient | None = None,
) -> str:
    """Push the whole output directory; returns the artifact reference.

    Raises:
        ConfigurationError: No repository configured.
        ToolError: oras failed.
    """
    if not config.repository:
        raise ConfigurationError.missing_required("push.repository", "needed to push artifacts")
    tag = config.tag or default_tag(manifest.test_name)
    ref = artifact_ref(config.registry, config.repository, tag)
    title = artifact_title(manifest, config.artifact_title)
    annotations = {
        "org.opencontainers.image.created": utc_now(),
        "org.opencontainers.image.title": title,
        "org.opencontainers.image.description": f"Coverage data from test: {manifest.test_name}",
    }
    (client or OrasClient()).push(
        output_dir, ref, annotations=annotations, expires_after=config.expires_after
    )
    if ref_file := write_ref_file(ref):
        log.info("push.ref_written", path=str(ref_file))
    log.info("push.done", ref=ref)
    return ref
