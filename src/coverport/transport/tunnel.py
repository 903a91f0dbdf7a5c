"""Local-to-pod port relay via ``kubectl port-forward``."""

from __future__ import annotations

import socket
import subprocess
from types import TracebackType

import structlog

from coverport.core.errors import TransportError
from coverport.tools.runner import require_tool

log = structlog.get_logger(__name__)

_TERMINATE_GRACE_SEC = 3.0


def find_free_port() -> int:
    """Ask the OS for an unused local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


class PortForwardTunnel:
    """Port-forward to one pod, scoped to a single collection attempt.

    Usage::

        with PortForwardTunnel("ns", "pod-abc", 9095) as tunnel:
            httpx.get(f"{tunnel.base_url}/health")
    """

    def __init__(
        self,
        namespace: str,
        pod: str,
        remote_port: int,
        *,
        local_port: int | None = None,
        kubectl: str | None = None,
    ) -> None:
        self.namespace = namespace
        self.pod = pod
        self.remote_port = remote_port
        self.local_port = local_port or find_free_port()
        self._kubectl = kubectl
        self._proc: subprocess.Popen[str] | None = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.local_port}"

    @property
    def target(self) -> str:
        return f"{self.namespace}/{self.pod}"

    def start(self) -> None:
        """Spawn the relay process.

        Raises:
            TransportError: kubectl missing or the process could not start.
        """
        kubectl = self._kubectl or require_tool("kubectl", "port-forwarding")
        args = [
            kubectl,
            "port-forward",
            "--address",
            "127.0.0.1",
            "-n",
            self.namespace,
            f"pod/{self.pod}",
            f"{self.local_port}:{self.remote_port}",
        ]
        try:
            self._proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise TransportError.tunnel_failed(self.target, str(e)) from e
        log.debug("tunnel.started", target=self.target, local_port=self.local_port)

    def check_alive(self) -> None:
        """Raise if the relay process has already exited.

        A relay that dies before the endpoint answers failed during setup.
        """
        if self._proc is None:
            raise TransportError.tunnel_failed(self.target, "tunnel not started")
        returncode = self._proc.poll()
        if returncode is not None:
            stderr = self._proc.stderr.read() if self._proc.stderr else ""
            raise TransportError.tunnel_failed(
                self.target, stderr.strip() or f"kubectl exited with status {returncode}"
            )

    def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=_TERMINATE_GRACE_SEC)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        if proc.stderr:
            proc.stderr.close()
        log.debug("tunnel.closed", target=self.target)

    def __enter__(self) -> PortForwardTunnel:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
