"""Coverport error types with typed error codes.

Error code ranges:
- 2xxx: Configuration
- 3xxx: Resolution (target discovery)
- 4xxx: Transport (tunnel / HTTP)
- 5xxx: Payload (coverage data)
- 6xxx: External tools
- 7xxx: Manifest
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Configuration (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_CONFLICT = 2004

    # Resolution (3xxx)
    RESOLUTION_API_UNREACHABLE = 3001
    RESOLUTION_NOT_FOUND = 3002
    RESOLUTION_INVALID_TARGET = 3003

    # Transport (4xxx)
    TRANSPORT_TUNNEL_FAILED = 4001
    TRANSPORT_UNREACHABLE = 4002
    TRANSPORT_BAD_STATUS = 4003

    # Payload (5xxx)
    PAYLOAD_MALFORMED = 5001
    PAYLOAD_EMPTY = 5002
    PAYLOAD_FIELD_MISSING = 5003

    # External tools (6xxx)
    TOOL_NOT_FOUND = 6001
    TOOL_FAILED = 6002

    # Manifest (7xxx)
    MANIFEST_NOT_FOUND = 7001
    MANIFEST_INVALID = 7002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(frozen=True, slots=True)
class CoverportError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigurationError(CoverportError):
    """Contradictory or missing parameters. Raised before any I/O."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str, reason: str = "") -> "ConfigurationError":
        suffix = f" ({reason})" if reason else ""
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required option: {field}{suffix}",
            details={"field": field},
        )

    @classmethod
    def conflict(cls, options: list[str]) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_CONFLICT,
            message=f"Options are mutually exclusive, use only one of: {', '.join(options)}",
            details={"options": options},
        )


class ResolutionError(CoverportError):
    """Target enumeration failed for the discovery attempt as a whole."""

    @classmethod
    def api_unreachable(cls, operation: str, reason: str) -> "ResolutionError":
        return cls(
            code=ErrorCode.RESOLUTION_API_UNREACHABLE,
            message=f"Cluster API call failed ({operation}): {reason}",
            retryable=True,
            details={"operation": operation, "reason": reason},
        )

    @classmethod
    def not_found(cls, kind: str, name: str, namespace: str | None = None) -> "ResolutionError":
        where = f"{namespace}/{name}" if namespace else name
        return cls(
            code=ErrorCode.RESOLUTION_NOT_FOUND,
            message=f"{kind} not found: {where}",
            details={"kind": kind, "name": name, "namespace": namespace},
        )

    @classmethod
    def invalid_target(cls, value: str, reason: str) -> "ResolutionError":
        return cls(
            code=ErrorCode.RESOLUTION_INVALID_TARGET,
            message=f"Invalid target {value!r}: {reason}",
            details={"value": value, "reason": reason},
        )


class TransportError(CoverportError):
    """Tunnel or connection failure. Fatal for one target only."""

    @property
    def soft(self) -> bool:
        """Unreachable-after-retries is a soft failure; tunnel setup is hard."""
        return self.code == ErrorCode.TRANSPORT_UNREACHABLE

    @classmethod
    def tunnel_failed(cls, target: str, reason: str) -> "TransportError":
        return cls(
            code=ErrorCode.TRANSPORT_TUNNEL_FAILED,
            message=f"Failed to open tunnel to {target}: {reason}",
            details={"target": target, "reason": reason},
        )

    @classmethod
    def unreachable(cls, url: str, attempts: int, reason: str = "") -> "TransportError":
        return cls(
            code=ErrorCode.TRANSPORT_UNREACHABLE,
            message=f"Coverage endpoint {url} not ready after {attempts} attempt(s)"
            + (f": {reason}" if reason else ""),
            retryable=True,
            details={"url": url, "attempts": attempts, "reason": reason},
        )

    @classmethod
    def bad_status(cls, url: str, status_code: int, body: str = "") -> "TransportError":
        return cls(
            code=ErrorCode.TRANSPORT_BAD_STATUS,
            message=f"{url} returned HTTP {status_code}",
            details={"url": url, "status_code": status_code, "body": body[:500]},
        )


class PayloadError(CoverportError):
    """Malformed coverage data. Fatal for one target's conversion step."""

    @classmethod
    def malformed(cls, source: str, reason: str) -> "PayloadError":
        return cls(
            code=ErrorCode.PAYLOAD_MALFORMED,
            message=f"Malformed coverage payload from {source}: {reason}",
            details={"source": source, "reason": reason},
        )

    @classmethod
    def empty(cls, source: str) -> "PayloadError":
        return cls(
            code=ErrorCode.PAYLOAD_EMPTY,
            message=f"No coverage data in payload from {source}",
            details={"source": source},
        )

    @classmethod
    def field_missing(cls, document: str, field: str) -> "PayloadError":
        return cls(
            code=ErrorCode.PAYLOAD_FIELD_MISSING,
            message=f"{document}: required field missing: {field}",
            details={"document": document, "field": field},
        )


class ToolError(CoverportError):
    """External tool unavailable or failed."""

    @classmethod
    def not_found(cls, tool: str, purpose: str) -> "ToolError":
        return cls(
            code=ErrorCode.TOOL_NOT_FOUND,
            message=f"{tool} not found in PATH (required for {purpose})",
            details={"tool": tool, "purpose": purpose},
        )

    @classmethod
    def failed(cls, tool: str, returncode: int, output: str = "") -> "ToolError":
        return cls(
            code=ErrorCode.TOOL_FAILED,
            message=f"{tool} exited with status {returncode}",
            details={"tool": tool, "returncode": returncode, "output": output[-2000:]},
        )


class ManifestError(CoverportError):
    """Collection manifest missing or unreadable."""

    @classmethod
    def not_found(cls, path: str) -> "ManifestError":
        return cls(
            code=ErrorCode.MANIFEST_NOT_FOUND,
            message=f"Collection manifest not found: {path}",
            details={"path": path},
        )

    @classmethod
    def invalid(cls, path: str, reason: str) -> "ManifestError":
        return cls(
            code=ErrorCode.MANIFEST_INVALID,
            message=f"Invalid collection manifest at {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class InternalError(CoverportError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )

    @classmethod
    def timeout(cls, operation: str, seconds: float) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_TIMEOUT,
            message=f"{operation} exceeded deadline of {seconds:.0f}s",
            retryable=True,
            details={"operation": operation, "seconds": seconds},
        )
