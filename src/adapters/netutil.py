"""TCP reachability probes."""

from __future__ import annotations

import socket
import time

from core.domain.models import ProbeStatus

PORT_SSH = 22
PORT_KUBE_API = 7443

# TCP ports reported by `krt probe` when none are given
DEFAULT_REPORT_PORTS = (22, 80, 443, 6443, 7443)

PROBE_TIMEOUT_SECONDS = 1.0


def probe_tcp(host: str, port: int, *, timeout: float = PROBE_TIMEOUT_SECONDS) -> ProbeStatus:
    """Classify a TCP port by connecting to it within `timeout` seconds.

    - connection established: `open`
    - attempt timed out, packets are being dropped: `closed`
    - any other failure, e.g. connection refused: `filtered`

    Resolution and every resolved address share the one budget. When no
    address connects, the first failure decides the verdict.
    """

    deadline = time.monotonic() + timeout
    try:
        addresses = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except OSError:
        return ProbeStatus.FILTERED

    first_error: OSError | None = None
    for _, _, _, _, sockaddr in addresses:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            first_error = first_error or TimeoutError("probe budget exhausted")
            break
        try:
            conn = socket.create_connection(sockaddr[:2], timeout=remaining)
        except OSError as exc:
            first_error = first_error or exc
            continue
        conn.close()
        return ProbeStatus.OPEN

    if isinstance(first_error, TimeoutError):
        return ProbeStatus.CLOSED
    return ProbeStatus.FILTERED


def probe_ports(host: str, ports: list[int] | tuple[int, ...], *, timeout: float = PROBE_TIMEOUT_SECONDS) -> dict[int, ProbeStatus]:
    return {port: probe_tcp(host, port, timeout=timeout) for port in ports}
