"""Transport to the in-process coverage endpoint."""

from coverport.transport.protocol import CoverageResponse, HealthStatus, to_payload
from coverport.transport.session import Session, open_session
from coverport.transport.tunnel import PortForwardTunnel, find_free_port

__all__ = [
    "CoverageResponse",
    "HealthStatus",
    "PortForwardTunnel",
    "Session",
    "find_free_port",
    "open_session",
    "to_payload",
]
