"""Tests for attestation parsing."""

from __future__ import annotations

import base64
import json
import subprocess
from typing import Any

import pytest

from coverport.core.errors import PayloadError
from coverport.tools import cosign as cosign_module
from coverport.tools.cosign import (
    COMMIT_SHA_KEY,
    REPO_URL_KEY,
    AttestationReader,
    parse_attestation,
    pr_number_from_branch,
)

ANNOTATIONS = {
    REPO_URL_KEY: "https://github.com/org/app",
    COMMIT_SHA_KEY: "0123abcd",
    "pipelinesascode.tekton.dev/source_branch": "refs/pull/42/head",
}


def statement(annotations: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "_type": "https://in-toto.io/Statement/v0.1",
        "predicate": {
            "buildConfig": {
                "tasks": [
                    {
                        "invocation": {
                            "environment": {
                                "annotations": ANNOTATIONS if annotations is None else annotations
                            }
                        }
                    }
                ]
            }
        },
    }


def envelope(document: dict[str, Any], *, encode: bool = True) -> dict[str, Any]:
    payload = json.dumps(document)
    if encode:
        payload = base64.b64encode(payload.encode()).decode()
    return {"payloadType": "application/vnd.in-toto+json", "payload": payload}


class TestParseAttestation:
    def test_base64_envelope(self) -> None:
        metadata = parse_attestation(json.dumps(envelope(statement())))

        assert metadata.repo_url == "https://github.com/org/app"
        assert metadata.commit_sha == "0123abcd"
        assert metadata.branch == "refs/pull/42/head"
        assert metadata.pull_request == "42"

    def test_plain_json_payload(self) -> None:
        metadata = parse_attestation(json.dumps(envelope(statement(), encode=False)))

        assert metadata.commit_sha == "0123abcd"

    def test_array_of_envelopes_uses_first(self) -> None:
        other = statement({REPO_URL_KEY: "https://github.com/org/other", COMMIT_SHA_KEY: "ff"})
        output = json.dumps([envelope(statement()), envelope(other)])

        assert parse_attestation(output).commit_sha == "0123abcd"

    def test_one_envelope_per_line(self) -> None:
        output = "\n".join(json.dumps(envelope(statement())) for _ in range(2))

        assert parse_attestation(output).repo_url == "https://github.com/org/app"

    def test_pull_request_annotation_wins_over_branch(self) -> None:
        annotations = {**ANNOTATIONS, "pipelinesascode.tekton.dev/pull-request": "7"}

        metadata = parse_attestation(json.dumps(envelope(statement(annotations))))

        assert metadata.pull_request == "7"

    @pytest.mark.parametrize("output", ["", "   \n", "[]", "{}"])
    def test_empty_output(self, output: str) -> None:
        with pytest.raises(PayloadError) as exc_info:
            parse_attestation(output)

        assert exc_info.value.code.name == "PAYLOAD_EMPTY"

    def test_undecodable_payload(self) -> None:
        output = json.dumps({"payload": "not json and not base64!"})

        with pytest.raises(PayloadError) as exc_info:
            parse_attestation(output)

        assert exc_info.value.code.name == "PAYLOAD_MALFORMED"

    def test_missing_structure_reports_dotted_path(self) -> None:
        document = {"predicate": {"buildConfig": {"tasks": []}}}

        with pytest.raises(PayloadError) as exc_info:
            parse_attestation(json.dumps(envelope(document)))

        assert exc_info.value.details["field"] == "predicate.buildConfig.tasks"

    def test_missing_commit_annotation(self) -> None:
        annotations = {REPO_URL_KEY: "https://github.com/org/app"}

        with pytest.raises(PayloadError) as exc_info:
            parse_attestation(json.dumps(envelope(statement(annotations))))

        assert COMMIT_SHA_KEY in exc_info.value.details["field"]


class TestPrNumberFromBranch:
    @pytest.mark.parametrize(
        ("branch", "expected"),
        [
            ("pull/12/head", "12"),
            ("refs/pull/34/merge", "34"),
            ("pr-56", "56"),
            ("pr/78", "78"),
            ("main", None),
            ("feature/pull-request-ui", None),
        ],
    )
    def test_patterns(self, branch: str, expected: str | None) -> None:
        assert pr_number_from_branch(branch) == expected


class TestAttestationReader:
    def test_runs_cosign_download(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[list[str]] = []

        def fake_run_tool(args, **kwargs):
            seen.append(list(args))
            stdout = json.dumps(envelope(statement()))
            return subprocess.CompletedProcess(args, 0, stdout=stdout, stderr="")

        monkeypatch.setattr(cosign_module, "run_tool", fake_run_tool)

        metadata = AttestationReader("cosign").git_metadata("quay.io/org/app@sha256:abc")

        assert seen == [["cosign", "download", "attestation", "quay.io/org/app@sha256:abc"]]
        assert metadata.commit_sha == "0123abcd"
