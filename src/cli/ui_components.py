"""CLI UI components (Rich).

Keeps table and panel layout out of the command functions so several
commands can share them.
"""

from __future__ import annotations

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import Event, Firewall, Host, ProbeStatus
from core.services.zone_pipeline import StageResult

_LOGO = r"""   _         _
  | | ___ __| |_
  | |/ / '__| __|
  |   <| |  | |_
  |_|\_\_|   \__|"""

_PROBE_STYLES = {
    ProbeStatus.OPEN: "green",
    ProbeStatus.FILTERED: "yellow",
    ProbeStatus.CLOSED: "red",
}


def print_banner(console: Console) -> None:
    """Print the welcome banner. Skipped in non-interactive output modes."""

    title = Text(_LOGO, style="bold cyan")
    subtitle = Text("Hosts • Firewalls • Zones", style="dim")
    body = Align.center(Text.assemble(title, "\n\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_fingerprint_table(rows: list[tuple[str, str]]) -> Table:
    table = Table(title="SSH Fingerprints")
    table.add_column("HOST", style="cyan", no_wrap=True)
    table.add_column("FINGERPRINT", style="white")
    for host, fingerprint in rows:
        table.add_row(host, fingerprint)
    return table


def build_probe_table(host: str, results: dict[int, ProbeStatus]) -> Table:
    table = Table(title=f"Port probe: {host}")
    table.add_column("PORT", style="cyan", justify="right")
    table.add_column("STATUS")
    for port, status in results.items():
        table.add_row(f"{port}/tcp", Text(status.value, style=_PROBE_STYLES[status]))
    return table


def build_hosts_table(hosts: list[Host]) -> Table:
    table = Table(title="Hosts")
    table.add_column("NAMESPACE", style="dim")
    table.add_column("NAME", style="cyan", no_wrap=True)
    table.add_column("HOST", style="white")
    table.add_column("PROTOCOL")
    table.add_column("OS-NAME", style="green")
    table.add_column("OS-VERSION", style="green")
    table.add_column("KERNEL-VERSION", style="dim")
    for host in hosts:
        os_info = host.status.os
        table.add_row(
            host.metadata.namespace,
            host.metadata.name,
            host.spec.host,
            host.spec.protocol.value,
            os_info.name,
            os_info.version,
            os_info.kernel_version,
        )
    return table


def build_firewalls_table(firewalls: list[Firewall]) -> Table:
    table = Table(title="Firewalls")
    table.add_column("NAMESPACE", style="dim")
    table.add_column("NAME", style="cyan", no_wrap=True)
    table.add_column("HOST-SELECTOR", style="white")
    table.add_column("HOST-COUNT", justify="right", style="green")
    for firewall in firewalls:
        selector = firewall.spec.host_selector.match_metadata
        table.add_row(
            firewall.metadata.namespace,
            firewall.metadata.name,
            selector.name,
            str(firewall.status.host_count),
        )
    return table


def build_events_table(events: list[Event]) -> Table:
    table = Table(title="Events")
    table.add_column("TYPE")
    table.add_column("REASON", style="cyan")
    table.add_column("OBJECT", style="dim")
    table.add_column("MESSAGE", style="white")
    for event in events:
        style = "yellow" if event.type.value == "Warning" else "green"
        table.add_row(Text(event.type.value, style=style), event.reason, event.involved_object, event.message)
    return table


def build_stages_table(stages: list[StageResult]) -> Table:
    table = Table(title="Zone bootstrap")
    table.add_column("STAGE", style="cyan", no_wrap=True)
    table.add_column("RESULT")
    table.add_column("DETAIL", style="dim")
    for stage in stages:
        result = Text("changed", style="yellow") if stage.changed else Text("ok", style="green")
        table.add_row(stage.name, result, stage.detail)
    return table
