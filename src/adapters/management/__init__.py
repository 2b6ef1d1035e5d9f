"""Management clients (one module per transport).

Every member of `Protocol` has exactly one factory in `CLIENT_FACTORIES`;
adding a transport means adding an enum member, a module implementing
`core.interfaces.management.ManagementClient` and one registry entry.
"""

from __future__ import annotations

import logging
from typing import Callable

from adapters.management.ssh import SSHManagementClient
from core.domain.models import Host, Protocol
from core.errors import UnknownProtocolError
from core.interfaces.management import ManagementClient
from core.interfaces.store import SecretReader

ClientFactory = Callable[..., ManagementClient]

CLIENT_FACTORIES: dict[Protocol, ClientFactory] = {
    Protocol.SSH: SSHManagementClient,
}

_unregistered = set(Protocol) - set(CLIENT_FACTORIES)
if _unregistered:  # pragma: no cover
    raise RuntimeError(f"missing management client for: {sorted(p.value for p in _unregistered)}")


def new_client(
    host: Host,
    *,
    secrets: SecretReader,
    logger: logging.Logger | None = None,
    connect_timeout: float = 10.0,
) -> ManagementClient:
    """Build the management client for the host's declared protocol.

    The client is returned unconnected. Raises `UnknownProtocolError` if no
    factory is registered for the protocol.
    """

    factory = CLIENT_FACTORIES.get(host.spec.protocol)
    if factory is None:
        raise UnknownProtocolError(host.spec.protocol)
    return factory(host, secrets=secrets, logger=logger, connect_timeout=connect_timeout)


__all__ = [
    "CLIENT_FACTORIES",
    "ClientFactory",
    "SSHManagementClient",
    "new_client",
]
