"""Management client: SSH.

- Credentials come from the Secret referenced by the Host.
- An optional single jump host is dialed first and the primary connection
  is tunneled through it.
- The operating system is probed as part of `connect`.
"""

from __future__ import annotations

import io
import logging

from dotenv import dotenv_values

from adapters.sshx import SSHClient, SSHConfig
from core.domain.models import Host, OSInfo, Secret
from core.errors import ConnectivityError, KrautError
from core.interfaces.store import SecretReader
from core.log import null_logger

OS_RELEASE_FILE = "/etc/os-release"


def parse_os_release(text: str) -> dict[str, str]:
    """Parse the shell-style `KEY="value"` assignments of os-release(5)."""

    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {key: value or "" for key, value in values.items()}


class SSHManagementClient:
    """Manages a host over SSH."""

    def __init__(
        self,
        host: Host,
        *,
        secrets: SecretReader,
        logger: logging.Logger | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._secrets = secrets
        self._logger = logger or null_logger()
        self._timeout = connect_timeout
        self._ssh: SSHClient | None = None
        self._os: OSInfo | None = None

    def connect(self) -> None:
        secret = self._secrets.get_secret(self._host.secret_key())
        opts = self._host.spec.ssh

        proxy: SSHClient | None = None
        if opts.proxy_host:
            proxy = SSHClient.dial(
                SSHConfig(
                    host=opts.proxy_host,
                    port=opts.proxy_port,
                    user=opts.proxy_user,
                    fingerprint=opts.proxy_fingerprint,
                    key=secret.get(Secret.PROXY_KEY),
                    passphrase=secret.get(Secret.PROXY_PASSPHRASE),
                    password=secret.get(Secret.PROXY_PASSWORD),
                    timeout=self._timeout,
                ),
                logger=self._logger,
            )

        try:
            self._ssh = SSHClient.dial(
                SSHConfig(
                    host=self._host.spec.host,
                    port=self._host.spec.port,
                    user=opts.user,
                    fingerprint=opts.fingerprint,
                    key=secret.get(Secret.KEY),
                    passphrase=secret.get(Secret.PASSPHRASE),
                    password=secret.get(Secret.PASSWORD),
                    timeout=self._timeout,
                ),
                proxy=proxy,
                logger=self._logger,
            )
        except KrautError:
            if proxy is not None:
                proxy.close()
            raise

        self._os = self.probe_os()

    def probe_os(self) -> OSInfo:
        """Read the release metadata and the kernel version.

        Two independent remote commands; if either fails nothing is returned.
        """

        if self._ssh is None:
            raise ConnectivityError(f"not connected: {self._host.key}")

        os_release_raw, _ = self._ssh.run_command(f"cat {OS_RELEASE_FILE}")
        os_release = parse_os_release(os_release_raw)

        kernel_raw, _ = self._ssh.run_command("uname -r")

        return OSInfo(
            name=os_release.get("NAME") or "Unknown",
            version=os_release.get("VERSION_ID") or "Unknown",
            kernel_version=kernel_raw.strip(),
        )

    def current_os(self) -> OSInfo:
        if self._os is None:
            raise ConnectivityError(f"operating system not probed: {self._host.key}")
        return self._os

    def disconnect(self) -> None:
        if self._ssh is not None:
            self._ssh.close()
            self._ssh = None

    def __enter__(self) -> SSHManagementClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()
