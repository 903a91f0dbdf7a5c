"""Git provenance from image build attestations (``cosign``).

Expected payload shape (in-toto statement with a SLSA predicate)::

    predicate.buildConfig.tasks[0].invocation.environment.annotations

Missing fields are reported by their dotted path.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coverport.core.errors import PayloadError
from coverport.tools.runner import require_tool, run_tool

log = structlog.get_logger(__name__)

REPO_URL_KEY = "pipelinesascode.tekton.dev/repo-url"
COMMIT_SHA_KEY = "build.appstudio.redhat.com/commit_sha"
BRANCH_KEY = "pipelinesascode.tekton.dev/source_branch"
TAG_KEY = "pipelinesascode.tekton.dev/tag"
PR_KEYS = (
    "pipelinesascode.tekton.dev/pull-request",
    "build.appstudio.redhat.com/pull_request_number",
)

_DOCUMENT = "attestation"
_PULL_SEGMENT = re.compile(r"(?:^|/)pull/(\d+)(?:/|$)")
_PR_BRANCH = re.compile(r"^pr[-/](\d+)$")


class GitMetadata(BaseModel):
    repo_url: str
    commit_sha: str
    branch: str | None = None
    tag: str | None = None
    pull_request: str | None = None


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _Environment(_Schema):
    annotations: dict[str, Any]


class _Invocation(_Schema):
    environment: _Environment


class _Task(_Schema):
    invocation: _Invocation


class _BuildConfig(_Schema):
    tasks: list[_Task] = Field(min_length=1)


class _Predicate(_Schema):
    build_config: _BuildConfig = Field(alias="buildConfig")


class AttestationStatement(_Schema):
    predicate: _Predicate

    @property
    def annotations(self) -> dict[str, Any]:
        return self.predicate.build_config.tasks[0].invocation.environment.annotations


def pr_number_from_branch(branch: str) -> str | None:
    """PR number from ``pull/123/head``, ``refs/pull/123/head``, ``pr-123`` or ``pr/123``."""
    if match := _PULL_SEGMENT.search(branch):
        return match.group(1)
    if match := _PR_BRANCH.match(branch):
        return match.group(1)
    return None


def _string(annotations: dict[str, Any], key: str) -> str | None:
    value = annotations.get(key)
    return value if isinstance(value, str) and value else None


def metadata_from_annotations(annotations: dict[str, Any]) -> GitMetadata:
    """Build GitMetadata from build annotations.

    Raises:
        PayloadError: Repository URL or commit SHA missing.
    """
    prefix = "predicate.buildConfig.tasks[0].invocation.environment.annotations"
    repo_url = _string(annotations, REPO_URL_KEY)
    if repo_url is None:
        raise PayloadError.field_missing(_DOCUMENT, f"{prefix}[{REPO_URL_KEY}]")
    commit_sha = _string(annotations, COMMIT_SHA_KEY)
    if commit_sha is None:
        raise PayloadError.field_missing(_DOCUMENT, f"{prefix}[{COMMIT_SHA_KEY}]")

    branch = _string(annotations, BRANCH_KEY)
    pull_request = next((v for k in PR_KEYS if (v := _string(annotations, k))), None)
    if pull_request is None and branch:
        pull_request = pr_number_from_branch(branch)

    return GitMetadata(
        repo_url=repo_url,
        commit_sha=commit_sha,
        branch=branch,
        tag=_string(annotations, TAG_KEY),
        pull_request=pull_request,
    )


def _first_envelope(output: str) -> dict[str, Any]:
    text = output.strip()
    if not text:
        raise PayloadError.empty(_DOCUMENT)
    try:
        documents: Any = json.loads(text)
    except json.JSONDecodeError:
        # One envelope per line
        first = text.splitlines()[0]
        try:
            documents = json.loads(first)
        except json.JSONDecodeError as e:
            raise PayloadError.malformed(_DOCUMENT, f"not JSON: {e}") from e
    if isinstance(documents, list):
        documents = documents[0] if documents else None
    if not isinstance(documents, dict) or not documents:
        raise PayloadError.empty(_DOCUMENT)
    return documents


def _decode_statement(payload: str) -> dict[str, Any]:
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(base64.b64decode(payload, validate=True))
    except (binascii.Error, ValueError) as e:
        raise PayloadError.malformed(
            _DOCUMENT, f"payload is neither JSON nor base64 JSON: {e}"
        ) from e


def parse_attestation(output: str) -> GitMetadata:
    """Parse ``cosign download attestation`` output into GitMetadata.

    Raises:
        PayloadError: Output is empty, undecodable, or lacks a required field.
    """
    envelope = _first_envelope(output)
    payload = envelope.get("payload")
    if not isinstance(payload, str) or not payload:
        raise PayloadError.field_missing(_DOCUMENT, "payload")
    try:
        statement = AttestationStatement.model_validate(_decode_statement(payload))
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(part) for part in err["loc"])
        raise PayloadError.field_missing(_DOCUMENT, loc) from e
    return metadata_from_annotations(statement.annotations)


class AttestationReader:
    def __init__(self, cosign: str | None = None, *, timeout: float = 120.0) -> None:
        self._cosign = cosign
        self._timeout = timeout

    def git_metadata(self, image: str) -> GitMetadata:
        cosign = self._cosign or require_tool("cosign", "reading image attestations")
        result = run_tool([cosign, "download", "attestation", image], timeout=self._timeout)
        metadata = parse_attestation(result.stdout)
        log.info(
            "cosign.git_metadata",
            image=image,
            repo=metadata.repo_url,
            commit=metadata.commit_sha,
            branch=metadata.branch,
            pull_request=metadata.pull_request,
        )
        return metadata
