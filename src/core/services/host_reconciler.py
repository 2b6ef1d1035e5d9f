"""Host reconciliation: keep `status.os` in line with the remote host.

Flow per invocation: build the management client for the declared
protocol, connect (which probes the OS), release the client, write the
fresh snapshot. Any failure records a `ConnectionFailed` event and leaves
the previous observation untouched; the error propagates so the work queue
retries with backoff.
"""

from __future__ import annotations

import logging
from typing import Callable

from adapters.management import new_client
from core.domain.models import EventType, Host, NamespacedName
from core.errors import KrautError, NotFoundError
from core.interfaces.management import ManagementClient
from core.interfaces.store import EventRecorder, ResourceStore
from core.log import null_logger

REASON_CONNECTION_FAILED = "ConnectionFailed"
REASON_OS_PROBED = "OSProbed"

ClientFactory = Callable[..., ManagementClient]


class HostReconciler:
    def __init__(
        self,
        store: ResourceStore,
        recorder: EventRecorder,
        *,
        client_factory: ClientFactory = new_client,
        logger: logging.Logger | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._client_factory = client_factory
        self._logger = logger or null_logger()
        self._connect_timeout = connect_timeout

    def reconcile(self, request: NamespacedName) -> None:
        try:
            host = self._store.get_host(request)
        except NotFoundError:
            return

        try:
            client = self._client_factory(
                host,
                secrets=self._store,
                logger=self._logger,
                connect_timeout=self._connect_timeout,
            )
        except Exception as exc:
            self._fail(host, exc, "failed to create management client")
            raise

        try:
            client.connect()
            os_info = client.current_os()
        except Exception as exc:
            self._fail(host, exc, "failed to connect to host")
            raise
        finally:
            self._release(client, host)

        host.status = host.status.model_copy(update={"os": os_info})
        try:
            self._store.update_host_status(host)
        except NotFoundError:
            return

        self._recorder.event(host, EventType.NORMAL, REASON_OS_PROBED, "OS information probed successfully.")
        self._logger.info(
            "probed %s: %s %s (kernel %s)",
            host.key,
            os_info.name,
            os_info.version,
            os_info.kernel_version,
        )

    def requests_for_secret(self, secret: NamespacedName) -> list[NamespacedName]:
        """Hosts to reconcile after the secret changed.

        Hosts are indexed by the secret name only, as referenced in their spec.
        """

        return self._store.hosts_for_secret(secret.name)

    def _fail(self, host: Host, exc: Exception, message: str) -> None:
        self._recorder.event(host, EventType.WARNING, REASON_CONNECTION_FAILED, str(exc))
        self._logger.error("%s: %s: %s", message, host.key, exc)

    def _release(self, client: ManagementClient, host: Host) -> None:
        try:
            client.disconnect()
        except KrautError as exc:
            self._logger.warning("failed to disconnect from %s: %s", host.key, exc)
