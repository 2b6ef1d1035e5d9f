"""Resource storage and event recording contracts.

The controller runtime and the reconcilers only see these; the in-memory
adapter backs the CLI and the tests.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from core.domain.models import EventType, Firewall, Host, NamespacedName, Secret

# (kind, key) of the resource that changed
ChangeHandler = Callable[[str, NamespacedName], None]


@runtime_checkable
class ResourceStore(Protocol):
    def get_host(self, key: NamespacedName) -> Host:
        """Raises `NotFoundError` when absent."""

        ...

    def list_hosts(self) -> list[Host]:
        ...

    def hosts_for_secret(self, secret_name: str) -> list[NamespacedName]:
        """Hosts whose `secret_ref.name` equals `secret_name`."""

        ...

    def update_host_status(self, host: Host) -> Host:
        ...

    def get_firewall(self, key: NamespacedName) -> Firewall:
        ...

    def list_firewalls(self) -> list[Firewall]:
        ...

    def update_firewall_status(self, firewall: Firewall) -> Firewall:
        ...

    def get_secret(self, key: NamespacedName) -> Secret:
        ...

    def subscribe(self, handler: ChangeHandler) -> None:
        ...


@runtime_checkable
class SecretReader(Protocol):
    """Narrow view of the store needed by transports to resolve credentials."""

    def get_secret(self, key: NamespacedName) -> Secret:
        ...


@runtime_checkable
class EventRecorder(Protocol):
    def event(self, obj: Host | Firewall, type: EventType, reason: str, message: str) -> None:
        ...
