"""Wire shapes of the coverage endpoint.

The instrumented process serves:

- ``/health`` -> ``{"status": "ok", "coverage_enabled": true}``
- ``/coverage?name=<label>`` -> ``{"label", "timestamp", "coverage_data"}``
- ``/coverage/reset`` (POST)

``coverage_data`` is base64. Counter-format servers may instead send the
native ``meta_filename``/``meta_data``/``counters_filename``/``counters_data``
fields.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import tarfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from coverport.config.constants import FORMAT_COUNTERS, FORMAT_STATEMENTS
from coverport.core.errors import PayloadError
from coverport.coverage.models import CoveragePayload


class HealthStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str = ""
    coverage_enabled: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class CoverageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str | None = None
    timestamp: str | int | float | None = None
    coverage_data: str | None = None
    meta_filename: str | None = None
    meta_data: str | None = None
    counters_filename: str | None = None
    counters_data: str | None = None

    @property
    def has_native_counters(self) -> bool:
        return bool(self.meta_data and self.counters_data)

    def captured_at(self) -> datetime:
        """Server timestamp if it parses, otherwise now."""
        ts = self.timestamp
        if isinstance(ts, int | float):
            # Millisecond epoch values are common from JS servers
            seconds = ts / 1000 if ts > 1e11 else ts
            return datetime.fromtimestamp(seconds, tz=UTC)
        if isinstance(ts, str) and ts:
            try:
                parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
            except ValueError:
                return datetime.now(UTC)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        return datetime.now(UTC)


def decode_b64(value: str, *, source: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadError.malformed(source, f"{field} is not valid base64: {e}") from e


def _is_tar(data: bytes) -> bool:
    # ustar magic at offset 257
    return len(data) >= 262 and data[257:262] == b"ustar"


def _tar_from_files(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def to_payload(response: CoverageResponse, *, label: str, source: str) -> CoveragePayload:
    """Decode a coverage response into a payload of known format.

    The wire format does not name the payload type. A tar archive or the
    native counter fields mean counter format; a JSON object means
    statement format.

    Raises:
        PayloadError: Missing, empty or undecodable data.
    """
    captured_at = response.captured_at()
    label = response.label or label

    if response.has_native_counters:
        meta_name = Path(response.meta_filename or "covmeta.0").name
        counters_name = Path(response.counters_filename or "covcounters.0").name
        raw = _tar_from_files(
            {
                meta_name: decode_b64(response.meta_data or "", source=source, field="meta_data"),
                counters_name: decode_b64(
                    response.counters_data or "", source=source, field="counters_data"
                ),
            }
        )
        return CoveragePayload(label, captured_at, FORMAT_COUNTERS, raw)

    if response.coverage_data is None:
        raise PayloadError.field_missing("coverage response", "coverage_data")
    raw = decode_b64(response.coverage_data, source=source, field="coverage_data")
    if not raw:
        raise PayloadError.empty(source)

    if _is_tar(raw):
        return CoveragePayload(label, captured_at, FORMAT_COUNTERS, raw)
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadError.malformed(source, "neither a JSON document nor a tar archive") from e
    if not isinstance(document, dict):
        raise PayloadError.malformed(source, "JSON payload must be an object keyed by file path")
    return CoveragePayload(label, captured_at, FORMAT_STATEMENTS, raw)
