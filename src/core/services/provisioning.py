"""Idempotent provisioning steps run over a remote shell.

Every step reads the current state first and only issues mutating commands
when the host has not converged yet, so each one is safe to re-run from
scratch. There is no rollback across steps.
"""

from __future__ import annotations

import ipaddress
import json
import logging
import shlex

from core.domain.provisioning import HostnameCheckpoint, HostnameStep, NetInterface
from core.errors import KrautError, PartialMutationError, ProvisioningError
from core.interfaces.checkpoints import CheckpointStore
from core.interfaces.shell import RemoteShell
from core.log import null_logger

HOSTS_FILE = "/etc/hosts"
WAN_INTERFACE = "wan"

IPInterface = ipaddress.IPv4Interface | ipaddress.IPv6Interface


# -- hostname


def get_hostname(shell: RemoteShell) -> str:
    stdout, _ = shell.run_command("hostnamectl hostname")
    return stdout.strip()


def _sed_pattern(value: str) -> str:
    out = []
    for ch in value:
        if ch in "\\/.*[]^$&":
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def _sed_replacement(value: str) -> str:
    return "".join("\\" + ch if ch in "\\/&" else ch for ch in value)


def rename_command(desired: str) -> str:
    return f"sudo hostnamectl hostname {shlex.quote(desired)}"


def hosts_file_command(previous: str, desired: str) -> str:
    expression = f"s/{_sed_pattern(previous)}/{_sed_replacement(desired)}/g"
    return f"sudo sed -i {shlex.quote(expression)} {HOSTS_FILE}"


def converge_hostname(
    shell: RemoteShell,
    desired: str,
    *,
    target: str,
    checkpoints: CheckpointStore,
    logger: logging.Logger | None = None,
) -> bool:
    """Make the remote hostname `desired`. Returns whether anything changed.

    Steps: `rename` (hostnamectl), then `hosts-file` (rewrite /etc/hosts).
    The previous name is checkpointed before the rename is issued, so a
    checkpoint store that cannot be written stops the change before the
    host is touched. When a previous run stopped between the two steps, the
    retry finds the hostname already changed and resumes at the hosts-file
    step using the recorded previous name.
    """

    logger = logger or null_logger()
    current = get_hostname(shell)

    checkpoint = checkpoints.load(target)
    if checkpoint is not None and checkpoint.desired != desired:
        checkpoints.clear(target)
        checkpoint = None

    if current == desired:
        if checkpoint is None or checkpoint.step is HostnameStep.HOSTS_FILE_UPDATED:
            logger.info("hostname already %s", desired)
            return False
        previous = checkpoint.previous
        logger.info("resuming hostname change %s -> %s at hosts-file step", previous, desired)
    else:
        previous = current
        checkpoints.save(
            HostnameCheckpoint(target=target, previous=previous, desired=desired, step=HostnameStep.RENAMING)
        )
        shell.run_command(rename_command(desired))
        logger.info("hostname changed %s -> %s", previous, desired)
        try:
            checkpoints.save(
                HostnameCheckpoint(target=target, previous=previous, desired=desired, step=HostnameStep.RENAMED)
            )
        except KrautError as exc:
            logger.error("failed to record hostname change: %s", exc)
            raise PartialMutationError("rename", exc) from exc

    try:
        shell.run_command(hosts_file_command(previous, desired))
    except KrautError as exc:
        logger.error("failed to update %s: %s", HOSTS_FILE, exc)
        raise PartialMutationError("hosts-file", exc) from exc

    checkpoints.save(
        HostnameCheckpoint(
            target=target,
            previous=previous,
            desired=desired,
            step=HostnameStep.HOSTS_FILE_UPDATED,
        )
    )
    return True


# -- interfaces


def _read_int(shell: RemoteShell, path: str, *, base: int = 10) -> int:
    stdout, _ = shell.run_command(f"cat {path}")
    raw = stdout.strip()
    if base == 16:
        raw = raw.removeprefix("0x")
    try:
        return int(raw, base)
    except ValueError as exc:
        raise ProvisioningError(f"failed to parse {path}: {raw!r}") from exc


def get_interfaces(shell: RemoteShell) -> dict[str, NetInterface]:
    """Network interfaces of the remote host, read from sysfs."""

    names_stdout, _ = shell.run_command("ls -1 /sys/class/net")
    virtual_stdout, _ = shell.run_command("ls -1 /sys/devices/virtual/net")
    virtual = {line.strip() for line in virtual_stdout.splitlines() if line.strip()}

    interfaces: dict[str, NetInterface] = {}
    for line in names_stdout.splitlines():
        name = line.strip()
        if not name:
            continue
        base = f"/sys/class/net/{name}"
        address_stdout, _ = shell.run_command(f"cat {base}/address")
        interfaces[name] = NetInterface(
            name=name,
            hardware_addr=address_stdout.strip().lower(),
            mtu=_read_int(shell, f"{base}/mtu"),
            raw_flags=_read_int(shell, f"{base}/flags", base=16),
            index=_read_int(shell, f"{base}/ifindex"),
            physical=name not in virtual,
        )
    return interfaces


def get_interface_addresses(shell: RemoteShell, iface: str) -> list[IPInterface]:
    """Addresses configured on `iface`, parsed from `ip -j -o addr show`."""

    stdout, _ = shell.run_command(f"ip -j -o addr show dev {shlex.quote(iface)}")
    addresses: list[IPInterface] = []
    for line in stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entries = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ProvisioningError(f"failed to parse addresses of {iface}: {exc}") from exc
        if isinstance(entries, dict):
            entries = [entries]
        for entry in entries:
            for info in entry.get("addr_info", []):
                local = info.get("local")
                prefixlen = info.get("prefixlen")
                if local is None or prefixlen is None:
                    continue
                addresses.append(ipaddress.ip_interface(f"{local}/{prefixlen}"))
    return addresses


def _netplan_get(shell: RemoteShell, key: str) -> str:
    stdout, _ = shell.run_command(f"sudo netplan get {shlex.quote(key)}")
    value = stdout.strip().strip('"').strip("'")
    return "" if value in ("", "null") else value


def _netplan_set(shell: RemoteShell, key: str, value: str) -> None:
    shell.run_command(f"sudo netplan set {shlex.quote(f'{key}={value}')}")


def _netplan_apply(shell: RemoteShell) -> None:
    shell.run_command("sudo netplan apply")


# -- network convergence


def configure_loopback_interface(
    shell: RemoteShell,
    router_id: ipaddress.IPv4Address,
    *,
    logger: logging.Logger | None = None,
) -> bool:
    """Ensure the router ID is configured as a /32 on the loopback interface."""

    logger = logger or null_logger()
    loopbacks = [i for i in get_interfaces(shell).values() if i.is_loopback]
    if len(loopbacks) > 1:
        raise ProvisioningError("failed to update configuration: ambiguous loopback interfaces found")
    if not loopbacks:
        raise ProvisioningError("failed to update configuration: no loopback interface found")
    loopback = loopbacks[0]

    wanted = ipaddress.IPv4Interface(f"{router_id}/32")
    if wanted in get_interface_addresses(shell, loopback.name):
        logger.info("loopback %s already has %s", loopback.name, wanted)
        return False

    _netplan_set(shell, f"ethernets.{loopback.name}.addresses", f"[{wanted}]")
    _netplan_apply(shell)
    logger.info("configured %s on %s", wanted, loopback.name)
    return True


def configure_dhcp_client(shell: RemoteShell, *, logger: logging.Logger | None = None) -> bool:
    """Enable DHCPv4 on physical interfaces that have neither an address nor a netplan entry."""

    logger = logger or null_logger()
    interfaces = sorted(get_interfaces(shell).values(), key=lambda i: i.index)

    enabled: list[str] = []
    for iface in interfaces:
        if iface.is_loopback or not iface.physical:
            continue
        addresses = get_interface_addresses(shell, iface.name)
        if any(isinstance(a, ipaddress.IPv4Interface) for a in addresses):
            continue
        if _netplan_get(shell, f"ethernets.{iface.name}"):
            continue
        _netplan_set(shell, f"ethernets.{iface.name}.dhcp4", "true")
        enabled.append(iface.name)

    if not enabled:
        logger.info("DHCP client configuration unchanged")
        return False
    _netplan_apply(shell)
    logger.info("enabled DHCP on %s", ", ".join(enabled))
    return True


def identify_wan_interface(shell: RemoteShell) -> str:
    """Name of the interface carrying the IPv4 default route."""

    stdout, _ = shell.run_command("ip -j route show default")
    try:
        routes = json.loads(stdout or "[]")
    except json.JSONDecodeError as exc:
        raise ProvisioningError(f"failed to parse routes: {exc}") from exc
    for route in routes:
        dev = route.get("dev")
        if dev:
            return str(dev)
    raise ProvisioningError("failed to identify WAN interface: no default route")


def configure_wan_interface(shell: RemoteShell, *, logger: logging.Logger | None = None) -> bool:
    """Pin the default-route interface to the name `wan` by MAC address."""

    logger = logger or null_logger()
    name = identify_wan_interface(shell)
    if name == WAN_INTERFACE:
        logger.info("WAN interface already named %s", WAN_INTERFACE)
        return False

    interfaces = get_interfaces(shell)
    iface = interfaces.get(name)
    if iface is None or not iface.hardware_addr:
        raise ProvisioningError(f"failed to identify WAN interface: no hardware address for {name}")

    prefix = f"ethernets.{WAN_INTERFACE}"
    if _netplan_get(shell, f"{prefix}.match.macaddress").lower() == iface.hardware_addr:
        logger.info("WAN interface %s already pinned, rename pending", name)
        return False

    if _netplan_get(shell, f"ethernets.{name}"):
        _netplan_set(shell, f"ethernets.{name}", "null")
    _netplan_set(shell, f"{prefix}.match.macaddress", iface.hardware_addr)
    _netplan_set(shell, f"{prefix}.set-name", WAN_INTERFACE)
    _netplan_set(shell, f"{prefix}.dhcp4", "true")
    _netplan_apply(shell)
    logger.info("pinned %s (%s) as %s", name, iface.hardware_addr, WAN_INTERFACE)
    return True


__all__ = [
    "configure_dhcp_client",
    "configure_loopback_interface",
    "configure_wan_interface",
    "converge_hostname",
    "get_hostname",
    "get_interface_addresses",
    "get_interfaces",
    "identify_wan_interface",
]
