import pytest

from adapters import management
from adapters.management import SSHManagementClient, new_client
from conftest import FakeManagementClient, make_host, make_secret, ubuntu
from core.domain.models import NamespacedName, OSInfo, Protocol
from core.errors import ConnectivityError, UnknownProtocolError
from core.services.host_reconciler import (
    REASON_CONNECTION_FAILED,
    REASON_OS_PROBED,
    HostReconciler,
)

KEY = NamespacedName(namespace="default", name="web-1")


def _factory(client, calls=None):
    def factory(host, **kwargs):
        if calls is not None:
            calls.append((host.key, kwargs))
        return client

    return factory


def test_success_writes_os_and_releases_session(store, recorder):
    store.put_secret(make_secret())
    store.put_host(make_host("web-1"))
    client = FakeManagementClient(os_info=ubuntu("24.04"))

    HostReconciler(store, recorder, client_factory=_factory(client)).reconcile(KEY)

    assert store.get_host(KEY).status.os == ubuntu("24.04")
    assert client.connected and client.disconnected
    assert recorder.reasons("Host/default/web-1") == [REASON_OS_PROBED]


def test_factory_receives_store_and_timeout(store, recorder):
    store.put_host(make_host("web-1"))
    calls = []

    HostReconciler(
        store,
        recorder,
        client_factory=_factory(FakeManagementClient(), calls),
        connect_timeout=3.0,
    ).reconcile(KEY)

    (key, kwargs), = calls
    assert key == KEY
    assert kwargs["secrets"] is store
    assert kwargs["connect_timeout"] == 3.0


def test_connect_failure_keeps_previous_os(store, recorder):
    previous = OSInfo(name="Ubuntu", version="22.04", kernel_version="5.15.0-1")
    store.put_host(make_host("web-1", os_info=previous))
    client = FakeManagementClient(connect_error=ConnectivityError("failed to connect: boom"))

    with pytest.raises(ConnectivityError):
        HostReconciler(store, recorder, client_factory=_factory(client)).reconcile(KEY)

    assert store.get_host(KEY).status.os == previous
    assert client.disconnected
    events = recorder.events("Host/default/web-1")
    assert [e.reason for e in events] == [REASON_CONNECTION_FAILED]
    assert "boom" in events[0].message


def test_unexpected_error_still_releases_session(store, recorder):
    store.put_host(make_host("web-1"))
    client = FakeManagementClient(connect_error=RuntimeError("bug"))

    with pytest.raises(RuntimeError):
        HostReconciler(store, recorder, client_factory=_factory(client)).reconcile(KEY)

    assert client.disconnected
    events = recorder.events("Host/default/web-1")
    assert [e.reason for e in events] == [REASON_CONNECTION_FAILED]
    assert events[0].message == "bug"


def test_unexpected_factory_error_records_event(store, recorder):
    store.put_host(make_host("web-1"))

    def factory(host, **kwargs):
        raise TypeError("unexpected keyword argument 'connect_timeout'")

    with pytest.raises(TypeError):
        HostReconciler(store, recorder, client_factory=factory).reconcile(KEY)

    assert recorder.reasons("Host/default/web-1") == [REASON_CONNECTION_FAILED]


def test_missing_host_is_a_noop(store, recorder):
    calls = []
    HostReconciler(store, recorder, client_factory=_factory(FakeManagementClient(), calls)).reconcile(KEY)
    assert calls == []


def test_unknown_protocol(store, recorder, monkeypatch):
    monkeypatch.delitem(management.CLIENT_FACTORIES, Protocol.SSH)
    store.put_host(make_host("web-1"))

    with pytest.raises(UnknownProtocolError):
        HostReconciler(store, recorder).reconcile(KEY)

    assert recorder.reasons() == [REASON_CONNECTION_FAILED]


def test_new_client_returns_unconnected_ssh_client(store):
    client = new_client(make_host("web-1"), secrets=store)
    assert isinstance(client, SSHManagementClient)
    with pytest.raises(ConnectivityError):
        client.current_os()


def test_registry_covers_every_protocol():
    assert set(management.CLIENT_FACTORIES) == set(Protocol)


def test_requests_for_secret_uses_secret_name(store, recorder):
    store.put_host(make_host("web-1", "default", secret="creds"))
    store.put_host(make_host("web-2", "prod", secret="creds"))
    store.put_host(make_host("db-1", "default", secret="db-creds"))

    reconciler = HostReconciler(store, recorder)
    requests = reconciler.requests_for_secret(NamespacedName(namespace="default", name="creds"))

    assert requests == [
        NamespacedName(namespace="default", name="web-1"),
        NamespacedName(namespace="prod", name="web-2"),
    ]
