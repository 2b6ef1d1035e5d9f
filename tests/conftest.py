import ipaddress
import json

import pytest

from adapters.memory_store import InMemoryEventRecorder, InMemoryStore
from core.domain.models import Firewall, Host, OSInfo, Secret


class FakeShell:
    """Records commands and answers them from a table.

    `responses` maps a command to its stdout (or a callable producing it);
    `failures` maps a command to the exception it raises.
    """

    def __init__(self, responses=None, failures=None):
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.commands = []
        self.closed = False

    def run_command(self, command):
        self.commands.append(command)
        if command in self.failures:
            raise self.failures[command]
        value = self.responses.get(command, "")
        if callable(value):
            value = value()
        return value, ""

    def close(self):
        self.closed = True

    def mutations(self):
        return [c for c in self.commands if c.startswith("sudo") and " get " not in c]


class FakeManagementClient:
    def __init__(self, os_info=None, connect_error=None):
        self.os_info = os_info or OSInfo(name="Ubuntu", version="22.04", kernel_version="5.15.0")
        self.connect_error = connect_error
        self.connected = False
        self.disconnected = False

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def current_os(self):
        return self.os_info

    def disconnect(self):
        self.disconnected = True


def make_host(name, namespace="default", *, secret="creds", os_info=None, address=None):
    host = Host.model_validate(
        {
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"host": address or f"{name}.example.net", "secretRef": {"name": secret}},
        }
    )
    if os_info is not None:
        host.status.os = os_info
    return host


def make_firewall(name, pattern, namespace="default", *, namespace_pattern="", host_count=0):
    return Firewall.model_validate(
        {
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"hostSelector": {"matchMetadata": {"name": pattern, "namespace": namespace_pattern}}},
            "status": {"hostCount": host_count},
        }
    )


def make_secret(name="creds", namespace="default", **data):
    return Secret.model_validate({"metadata": {"name": name, "namespace": namespace}, "data": data})


def ubuntu(version="22.04"):
    return OSInfo(name="Ubuntu", version=version, kernel_version="5.15.0-91-generic")


def _addr(*entries):
    info = []
    for cidr in entries:
        iface = ipaddress.ip_interface(cidr)
        info.append(
            {
                "family": "inet" if iface.version == 4 else "inet6",
                "local": str(iface.ip),
                "prefixlen": iface.network.prefixlen,
            }
        )
    return json.dumps([{"addr_info": info}]) if info else "[]"


def router_responses(*, addresses=None, default_dev="ens3", virtual=("lo", "docker0")):
    """sysfs and iproute2 output of a small router: lo, ens3, ens4, docker0."""

    links = {
        "lo": ("00:00:00:00:00:00", "0x9", 1),
        "ens3": ("52:54:00:AA:BB:01", "0x1003", 2),
        "ens4": ("52:54:00:aa:bb:02", "0x1003", 3),
        "docker0": ("02:42:ac:11:00:01", "0x1003", 4),
    }
    addresses = addresses or {"lo": ("127.0.0.1/8", "::1/128"), "ens3": ("192.0.2.10/24",)}

    responses = {
        "ls -1 /sys/class/net": "\n".join(links) + "\n",
        "ls -1 /sys/devices/virtual/net": "\n".join(virtual) + "\n",
        "ip -j route show default": json.dumps([{"dst": "default", "gateway": "192.0.2.1", "dev": default_dev}]),
    }
    for name, (mac, flags, index) in links.items():
        base = f"/sys/class/net/{name}"
        responses[f"cat {base}/address"] = mac + "\n"
        responses[f"cat {base}/flags"] = flags + "\n"
        responses[f"cat {base}/mtu"] = "1500\n"
        responses[f"cat {base}/ifindex"] = f"{index}\n"
        responses[f"ip -j -o addr show dev {name}"] = _addr(*addresses.get(name, ()))
    return responses


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def recorder():
    return InMemoryEventRecorder()
