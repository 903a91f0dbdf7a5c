"""Tests for coverage endpoint wire shapes."""

from __future__ import annotations

import base64
import io
import json
import tarfile
from datetime import UTC, datetime

import pytest

from coverport.core.errors import PayloadError
from coverport.transport.protocol import CoverageResponse, HealthStatus, to_payload


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _tar(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


class TestHealthStatus:
    def test_ok_requires_status_ok(self) -> None:
        assert HealthStatus(status="ok", coverage_enabled=True).ok
        assert not HealthStatus(status="starting").ok


class TestCapturedAt:
    @pytest.mark.parametrize(
        "timestamp",
        [1_700_000_000, 1_700_000_000_000, "2023-11-14T22:13:20Z", "2023-11-14T22:13:20"],
    )
    def test_formats(self, timestamp: int | str) -> None:
        captured = CoverageResponse(timestamp=timestamp).captured_at()

        assert captured == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)

    def test_unparseable_falls_back_to_now(self) -> None:
        before = datetime.now(UTC)

        captured = CoverageResponse(timestamp="yesterday").captured_at()

        assert captured >= before


class TestToPayload:
    def test_json_object_is_statement_format(self) -> None:
        doc = {"/app/src/a.js": {"s": {}}}
        response = CoverageResponse(coverage_data=_b64(json.dumps(doc).encode()))

        payload = to_payload(response, label="run-web", source="test")

        assert payload.format == "statement-json"
        assert json.loads(payload.raw) == doc
        assert payload.label == "run-web"

    def test_tar_is_counter_format(self) -> None:
        raw = _tar({"covmeta.1": b"m", "covcounters.1.2.3": b"c"})
        response = CoverageResponse(label="server-label", coverage_data=_b64(raw))

        payload = to_payload(response, label="run-api", source="test")

        assert payload.format == "counters-binary"
        assert payload.raw == raw
        assert payload.label == "server-label"

    def test_native_counter_fields_packed_as_tar(self) -> None:
        response = CoverageResponse(
            meta_filename="/tmp/cov/covmeta.abc",
            meta_data=_b64(b"meta"),
            counters_filename="covcounters.abc.1.2",
            counters_data=_b64(b"counters"),
        )

        payload = to_payload(response, label="run-api", source="test")

        assert payload.format == "counters-binary"
        with tarfile.open(fileobj=io.BytesIO(payload.raw)) as tar:
            assert sorted(tar.getnames()) == ["covcounters.abc.1.2", "covmeta.abc"]

    @pytest.mark.parametrize(
        ("response", "code"),
        [
            (CoverageResponse(), "PAYLOAD_FIELD_MISSING"),
            (CoverageResponse(coverage_data=""), "PAYLOAD_EMPTY"),
            (CoverageResponse(coverage_data="!!not-base64!!"), "PAYLOAD_MALFORMED"),
            (CoverageResponse(coverage_data=_b64(b"plain text")), "PAYLOAD_MALFORMED"),
            (CoverageResponse(coverage_data=_b64(b"[1, 2]")), "PAYLOAD_MALFORMED"),
        ],
    )
    def test_bad_payloads(self, response: CoverageResponse, code: str) -> None:
        with pytest.raises(PayloadError) as exc_info:
            to_payload(response, label="x", source="test")

        assert exc_info.value.code.name == code
