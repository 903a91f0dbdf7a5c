"""Coverage endpoint session.

One session per collection attempt against one target. Cluster targets
get a port-forward tunnel and a bounded liveness poll; direct targets use
the given URL as is. Every request's timeout is capped by the remaining
overall deadline.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Protocol

import httpx
import structlog
from pydantic import ValidationError

from coverport.config.constants import (
    COVERAGE_PATH,
    HEALTH_ATTEMPTS_DEFAULT,
    HEALTH_INTERVAL_SEC_DEFAULT,
    HEALTH_PATH,
    HEALTH_PROBE_TIMEOUT_SEC,
    RESET_PATH,
)
from coverport.core.errors import InternalError, PayloadError, TransportError
from coverport.coverage.models import CoveragePayload
from coverport.discovery.models import ResolvedTarget
from coverport.transport.protocol import CoverageResponse, HealthStatus, to_payload
from coverport.transport.tunnel import PortForwardTunnel

log = structlog.get_logger(__name__)


class Tunnel(Protocol):
    @property
    def base_url(self) -> str: ...

    def start(self) -> None: ...

    def check_alive(self) -> None: ...

    def close(self) -> None: ...


TunnelFactory = Callable[[str, str, int], Tunnel]


class Session:
    """Issues health/coverage/reset requests against one endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.Client,
        deadline: float,
        tunnel: Tunnel | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._deadline = deadline
        self._tunnel = tunnel
        self._sleep = sleep
        self._clock = clock

    def _remaining(self, operation: str, cap: float | None = None) -> float:
        remaining = self._deadline - self._clock()
        if remaining <= 0:
            raise InternalError.timeout(operation, 0)
        return min(remaining, cap) if cap is not None else remaining

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        cap: float | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        timeout = self._remaining(operation, cap)
        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, params=params, timeout=timeout)
        except httpx.TimeoutException as e:
            raise TransportError.unreachable(url, 1, f"timed out after {timeout:.1f}s") from e
        except httpx.HTTPError as e:
            raise TransportError.unreachable(url, 1, str(e)) from e
        if response.status_code != 200:
            raise TransportError.bad_status(url, response.status_code, response.text)
        return response

    def health(self) -> HealthStatus:
        response = self._request("GET", HEALTH_PATH, "health", cap=HEALTH_PROBE_TIMEOUT_SEC)
        try:
            return HealthStatus.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PayloadError.malformed(self.base_url + HEALTH_PATH, str(e)) from e

    def wait_ready(
        self,
        attempts: int = HEALTH_ATTEMPTS_DEFAULT,
        interval_sec: float = HEALTH_INTERVAL_SEC_DEFAULT,
    ) -> HealthStatus:
        """Poll /health with a fixed backoff.

        Raises:
            TransportError: Tunnel died (hard) or no healthy answer after
                ``attempts`` probes (soft).
        """
        last_error = ""
        for attempt in range(1, attempts + 1):
            if self._tunnel is not None:
                self._tunnel.check_alive()
            try:
                health = self.health()
            except (TransportError, PayloadError) as e:
                last_error = e.message
                log.debug(
                    "transport.health_retry", url=self.base_url, attempt=attempt, error=e.message
                )
            else:
                if health.ok:
                    if not health.coverage_enabled:
                        log.warning("transport.coverage_disabled", url=self.base_url)
                    return health
                last_error = f"status={health.status!r}"

            if attempt < attempts:
                if self._deadline - self._clock() <= interval_sec:
                    break
                self._sleep(interval_sec)

        raise TransportError.unreachable(self.base_url + HEALTH_PATH, attempts, last_error)

    def collect(self, label: str) -> CoveragePayload:
        response = self._request("GET", COVERAGE_PATH, "collect", params={"name": label})
        source = f"{self.base_url}{COVERAGE_PATH}"
        try:
            body = CoverageResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PayloadError.malformed(source, str(e)) from e
        payload = to_payload(body, label=label, source=source)
        log.info(
            "transport.collected",
            url=self.base_url,
            format=payload.format,
            bytes=len(payload.raw),
        )
        return payload

    def reset(self) -> None:
        self._request("POST", RESET_PATH, "reset")
        log.info("transport.reset", url=self.base_url)

    def close(self) -> None:
        try:
            self._client.close()
        finally:
            if self._tunnel is not None:
                self._tunnel.close()


def _default_tunnel(namespace: str, pod: str, remote_port: int) -> Tunnel:
    return PortForwardTunnel(namespace, pod, remote_port)


@contextmanager
def open_session(
    target: ResolvedTarget,
    remote_port: int,
    timeout_sec: float,
    *,
    health_attempts: int = HEALTH_ATTEMPTS_DEFAULT,
    health_interval_sec: float = HEALTH_INTERVAL_SEC_DEFAULT,
    transport: httpx.BaseTransport | None = None,
    tunnel_factory: TunnelFactory = _default_tunnel,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[Session]:
    """Open a ready session to a target; the tunnel is always closed on exit.

    Raises:
        TransportError: Tunnel setup failed, or the endpoint never became
            healthy.
    """
    deadline = time.monotonic() + timeout_sec
    client = httpx.Client(transport=transport, follow_redirects=True)

    if target.endpoint_url is not None:
        base_url = target.endpoint_url.rstrip("/")
        base_url = base_url.removesuffix(COVERAGE_PATH)
        session = Session(base_url, client=client, deadline=deadline, sleep=sleep)
        try:
            yield session
        finally:
            session.close()
        return

    assert target.namespace is not None and target.pod_name is not None
    tunnel = tunnel_factory(target.namespace, target.pod_name, remote_port)
    session = Session(tunnel.base_url, client=client, deadline=deadline, tunnel=tunnel, sleep=sleep)
    try:
        tunnel.start()
        log.debug("transport.tunnel_open", target=target.display_name, url=tunnel.base_url)
        session.wait_ready(health_attempts, health_interval_sec)
        yield session
    finally:
        session.close()
