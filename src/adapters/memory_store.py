"""In-memory resource store and event recorder.

Stands in for the cluster API: it keeps Hosts, Firewalls and Secrets, a
reverse index from secret name to the Hosts referencing it, and notifies
subscribers when declared intent changes. Status writes do not notify, so
a reconciler writing its own status does not trigger itself.

All reads return deep copies; callers never share mutable state with the
store or with each other.
"""

from __future__ import annotations

import logging
import threading
from typing import TypeVar

from core.domain.models import Event, EventType, Firewall, Host, NamespacedName, Secret
from core.errors import NotFoundError
from core.interfaces.store import ChangeHandler
from core.log import null_logger

T = TypeVar("T", Host, Firewall, Secret)


class InMemoryStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._hosts: dict[NamespacedName, Host] = {}
        self._firewalls: dict[NamespacedName, Firewall] = {}
        self._secrets: dict[NamespacedName, Secret] = {}
        self._secret_index: dict[str, set[NamespacedName]] = {}
        self._handlers: list[ChangeHandler] = []

    # -- watch

    def subscribe(self, handler: ChangeHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def _notify(self, kind: str, key: NamespacedName) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(kind, key)

    # -- writes of declared intent

    def put_host(self, host: Host) -> None:
        key = host.key
        with self._lock:
            previous = self._hosts.get(key)
            if previous is not None:
                self._secret_index.get(previous.spec.secret_ref.name, set()).discard(key)
                # status belongs to the reconciler
                host = host.model_copy(update={"status": previous.status}, deep=True)
            self._hosts[key] = host.model_copy(deep=True)
            self._secret_index.setdefault(host.spec.secret_ref.name, set()).add(key)
        self._notify(Host.kind, key)

    def put_firewall(self, firewall: Firewall) -> None:
        key = firewall.key
        with self._lock:
            previous = self._firewalls.get(key)
            if previous is not None:
                firewall = firewall.model_copy(update={"status": previous.status}, deep=True)
            self._firewalls[key] = firewall.model_copy(deep=True)
        self._notify(Firewall.kind, key)

    def put_secret(self, secret: Secret) -> None:
        with self._lock:
            self._secrets[secret.key] = secret.model_copy(deep=True)
        self._notify(Secret.kind, secret.key)

    def delete(self, kind: str, key: NamespacedName) -> None:
        with self._lock:
            if kind == Host.kind:
                host = self._hosts.pop(key, None)
                if host is not None:
                    self._secret_index.get(host.spec.secret_ref.name, set()).discard(key)
            elif kind == Firewall.kind:
                self._firewalls.pop(key, None)
            elif kind == Secret.kind:
                self._secrets.pop(key, None)
            else:
                raise ValueError(f"unknown kind: {kind}")
        self._notify(kind, key)

    # -- reads

    def _get(self, items: dict[NamespacedName, T], kind: str, key: NamespacedName) -> T:
        with self._lock:
            obj = items.get(key)
            if obj is None:
                raise NotFoundError(kind, str(key))
            return obj.model_copy(deep=True)

    def get_host(self, key: NamespacedName) -> Host:
        return self._get(self._hosts, Host.kind, key)

    def get_firewall(self, key: NamespacedName) -> Firewall:
        return self._get(self._firewalls, Firewall.kind, key)

    def get_secret(self, key: NamespacedName) -> Secret:
        return self._get(self._secrets, Secret.kind, key)

    def list_hosts(self) -> list[Host]:
        with self._lock:
            return [h.model_copy(deep=True) for _, h in sorted(self._hosts.items(), key=lambda kv: str(kv[0]))]

    def list_firewalls(self) -> list[Firewall]:
        with self._lock:
            return [f.model_copy(deep=True) for _, f in sorted(self._firewalls.items(), key=lambda kv: str(kv[0]))]

    def hosts_for_secret(self, secret_name: str) -> list[NamespacedName]:
        with self._lock:
            return sorted(self._secret_index.get(secret_name, set()), key=str)

    # -- status subresource

    def update_host_status(self, host: Host) -> Host:
        with self._lock:
            stored = self._hosts.get(host.key)
            if stored is None:
                raise NotFoundError(Host.kind, str(host.key))
            stored.status = host.status.model_copy(deep=True)
            return stored.model_copy(deep=True)

    def update_firewall_status(self, firewall: Firewall) -> Firewall:
        with self._lock:
            stored = self._firewalls.get(firewall.key)
            if stored is None:
                raise NotFoundError(Firewall.kind, str(firewall.key))
            stored.status = firewall.status.model_copy(deep=True)
            return stored.model_copy(deep=True)


class InMemoryEventRecorder:
    """Keeps events in memory and mirrors them to the logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._lock = threading.Lock()
        self._events: list[Event] = []
        self._logger = logger or null_logger()

    def event(self, obj: Host | Firewall, type: EventType, reason: str, message: str) -> None:
        involved = f"{obj.kind}/{obj.key}"
        record = Event(involved_object=involved, type=type, reason=reason, message=message)
        with self._lock:
            self._events.append(record)
        level = logging.WARNING if type is EventType.WARNING else logging.INFO
        self._logger.log(level, "%s %s: %s", involved, reason, message)

    def events(self, involved_object: str | None = None) -> list[Event]:
        with self._lock:
            return [
                e for e in self._events
                if involved_object is None or e.involved_object == involved_object
            ]

    def reasons(self, involved_object: str | None = None) -> list[str]:
        return [e.reason for e in self.events(involved_object)]
