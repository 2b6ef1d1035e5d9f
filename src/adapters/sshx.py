"""SSH transport built on paramiko.

- `SSHClient` dials a host (optionally through one jump host), verifies its
  host key fingerprint and runs commands strictly one after another.
- `probe_host_fingerprint` reads a server's host key without authenticating.
"""

from __future__ import annotations

import base64
import getpass
import hashlib
import io
import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

import paramiko

from core.errors import ConnectivityError, RemoteCommandError
from core.log import null_logger

DEFAULT_PORT = 22

_KEY_TYPES: tuple[type[paramiko.PKey], ...] = (
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
)


def fingerprint_sha256(key: paramiko.PKey) -> str:
    """OpenSSH style fingerprint: `SHA256:<base64 without padding>`."""

    digest = hashlib.sha256(key.asbytes()).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def fingerprint_md5(key: paramiko.PKey) -> str:
    raw = hashlib.md5(key.asbytes()).hexdigest()  # nosec
    return "MD5:" + ":".join(raw[i : i + 2] for i in range(0, len(raw), 2))


def fingerprint_matches(key: paramiko.PKey, expected: str) -> bool:
    algorithm = expected.split(":", 1)[0].upper()
    if algorithm == "MD5":
        return fingerprint_md5(key).lower() == expected.lower()
    return fingerprint_sha256(key) == expected.rstrip("=")


def split_host_port(target: str, default_port: int = DEFAULT_PORT) -> tuple[str, int]:
    """Split `host[:port]`; bracketed IPv6 literals are supported."""

    if target.startswith("["):
        host, _, rest = target[1:].partition("]")
        port = rest.removeprefix(":")
        return host, int(port) if port else default_port
    if target.count(":") == 1:
        host, port = target.split(":")
        return host, int(port)
    return target, default_port


def load_private_key(material: str, passphrase: str = "") -> paramiko.PKey:
    """Parse PEM/OpenSSH private key material of any supported type."""

    last_error: Exception | None = None
    for key_type in _KEY_TYPES:
        try:
            return key_type.from_private_key(io.StringIO(material), password=passphrase or None)
        except paramiko.PasswordRequiredException as exc:
            raise ConnectivityError("failed to parse private key: passphrase required") from exc
        except (paramiko.SSHException, ValueError) as exc:
            last_error = exc
    raise ConnectivityError(f"failed to parse private key: {last_error}")


class _FingerprintPolicy(paramiko.MissingHostKeyPolicy):
    """Accept a host key only if it matches the configured fingerprint."""

    def __init__(self, expected: str, logger: logging.Logger) -> None:
        self._expected = expected.strip()
        self._logger = logger

    def missing_host_key(self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey) -> None:
        actual = fingerprint_sha256(key)
        if not self._expected:
            self._logger.warning("host key not pinned, accepting %s for %s", actual, hostname)
            return
        if not fingerprint_matches(key, self._expected):
            raise paramiko.SSHException(
                f"host key mismatch for {hostname}: expected {self._expected}, got {actual}"
            )


@dataclass
class SSHConfig:
    """Connection parameters for one SSH leg."""

    host: str
    port: int = DEFAULT_PORT
    user: str = ""
    fingerprint: str = ""
    key: str = ""
    passphrase: str = ""
    password: str = ""
    # fall back to ~/.ssh private keys and the agent
    use_user_keys: bool = False
    timeout: float = 10.0

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class SSHClient:
    """An established SSH session.

    Commands are serialized by a lock; a session is never shared between
    concurrent callers.
    """

    def __init__(
        self,
        client: paramiko.SSHClient,
        config: SSHConfig,
        *,
        proxy: SSHClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._proxy = proxy
        self._lock = threading.Lock()
        self._closed = False
        self.config = config
        self.logger = logger or null_logger()

    @classmethod
    def dial(
        cls,
        config: SSHConfig,
        *,
        proxy: SSHClient | None = None,
        logger: logging.Logger | None = None,
    ) -> SSHClient:
        """Connect and authenticate. Credentials are tried key first, then password."""

        logger = logger or null_logger()
        pkey = load_private_key(config.key, config.passphrase) if config.key else None

        sock = None
        if proxy is not None:
            sock = proxy.open_tunnel(config.host, config.port)

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(_FingerprintPolicy(config.fingerprint, logger))
        try:
            client.connect(
                hostname=config.host,
                port=config.port,
                username=config.user or getpass.getuser(),
                pkey=pkey,
                password=config.password or None,
                sock=sock,
                timeout=config.timeout,
                banner_timeout=config.timeout,
                auth_timeout=config.timeout,
                allow_agent=config.use_user_keys,
                look_for_keys=config.use_user_keys,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise ConnectivityError(
                f"failed to establish SSH connection: {config.address}: {exc}"
            ) from exc

        logger.debug("connected to %s", config.address)
        return cls(client, config, proxy=proxy, logger=logger)

    def open_tunnel(self, host: str, port: int) -> paramiko.Channel:
        """Open a direct-tcpip channel to `host:port` through this session."""

        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise ConnectivityError(f"proxy session is closed: {self.config.address}")
        try:
            return transport.open_channel("direct-tcpip", (host, port), ("127.0.0.1", 0))
        except (paramiko.SSHException, OSError) as exc:
            raise ConnectivityError(
                f"failed to tunnel through {self.config.address} to {host}:{port}: {exc}"
            ) from exc

    def run_command(self, command: str) -> tuple[str, str]:
        """Run a command in a fresh channel and return `(stdout, stderr)`."""

        with self._lock:
            try:
                _, stdout, stderr = self._client.exec_command(command)
                out = stdout.read().decode("utf-8", errors="replace")
                err = stderr.read().decode("utf-8", errors="replace")
                status = stdout.channel.recv_exit_status()
            except (paramiko.SSHException, OSError) as exc:
                raise ConnectivityError(f"failed to run remote command: {command}: {exc}") from exc

        self.logger.debug("ran %r on %s (exit %d)", command, self.config.address, status)
        if status != 0:
            raise RemoteCommandError(command, status, err)
        return out, err

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._client.close()
        finally:
            if self._proxy is not None:
                self._proxy.close()

    def __enter__(self) -> SSHClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def probe_host_fingerprint(target: str, *, timeout: float = 10.0) -> str:
    """Return the SHA256 host key fingerprint of `target` (`host[:port]`).

    Only the key exchange is performed; no credentials are needed.
    """

    host, port = split_host_port(target)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise ConnectivityError(f"failed to connect: {host}:{port}: {exc}") from exc

    transport = paramiko.Transport(sock)
    try:
        transport.start_client(timeout=timeout)
        key = transport.get_remote_server_key()
    except (paramiko.SSHException, OSError) as exc:
        raise ConnectivityError(f"failed to read host key: {host}:{port}: {exc}") from exc
    finally:
        transport.close()
    return fingerprint_sha256(key)


def probe_host_fingerprints(
    targets: list[str],
    *,
    probe: Callable[[str], str] | None = None,
) -> list[tuple[str, str]]:
    """Probe all targets in parallel and wait for every result.

    A failed probe yields its error message as the row content; the batch
    itself never fails. Rows keep the order of `targets`.
    """

    probe = probe or probe_host_fingerprint

    def safe_probe(target: str) -> tuple[str, str]:
        try:
            return target, probe(target)
        except Exception as exc:  # the row carries the error
            return target, str(exc)

    if not targets:
        return []
    with ThreadPoolExecutor(max_workers=len(targets)) as pool:
        return list(pool.map(safe_probe, targets))
