"""Command-line interface `krt`.

Commands stay thin: they parse flags, build the settings, logger and
adapters, and hand off to `core.services`. Rendering lives in
`cli.ui_components`.
"""

from __future__ import annotations

import getpass
import logging
import time
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import typer
from rich.console import Console

from adapters.checkpoints import FileCheckpointStore
from adapters.manifests import apply_manifest, load_manifest, load_zone
from adapters.memory_store import InMemoryEventRecorder, InMemoryStore
from adapters.netutil import DEFAULT_REPORT_PORTS, probe_ports
from adapters.sshx import SSHClient, SSHConfig, probe_host_fingerprints
from cli import doctor
from cli.ui_components import (
    build_events_table,
    build_firewalls_table,
    build_fingerprint_table,
    build_hosts_table,
    build_probe_table,
    build_stages_table,
    print_banner,
)
from core.config import AppSettings, ZoneEnvironment
from core.domain.zone import Zone, ZoneRouter
from core.errors import KrautError
from core.log import new_logger
from core.services.controller import Manager
from core.services.zone_pipeline import PipelineHooks, StageResult, ZoneBootstrapPipeline

app = typer.Typer(no_args_is_help=True, help="Manage hosts, firewalls and zones.")
ssh_app = typer.Typer(no_args_is_help=True, help="SSH helpers.")
zone_app = typer.Typer(no_args_is_help=True, help="Zone bootstrap.")
controller_app = typer.Typer(no_args_is_help=True, help="Host and firewall controllers.")

app.add_typer(ssh_app, name="ssh")
app.add_typer(zone_app, name="zone")
app.add_typer(controller_app, name="controller")
app.add_typer(doctor.app, name="doctor")

console = Console()


@dataclass
class _State:
    settings: AppSettings
    logger: logging.Logger


def _package_version() -> str:
    try:
        return version("kraut")
    except PackageNotFoundError:
        return "0.0.0"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"krt {_package_version()}")
        raise typer.Exit()


def _state(ctx: typer.Context) -> _State:
    state = ctx.obj
    if not isinstance(state, _State):
        settings = AppSettings()
        state = _State(settings=settings, logger=new_logger(level=settings.log_level))
        ctx.obj = state
    return state


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[bold red]error:[/bold red] {exc}")
    return typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    show_version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    settings = AppSettings()
    level = "DEBUG" if verbose else settings.log_level
    logger = new_logger(level=level, cli=settings.log_format == "console")
    ctx.obj = _State(settings=settings, logger=logger)


@ssh_app.command("fingerprint")
def ssh_fingerprint(
    hosts: list[str] = typer.Argument(..., help="Targets as host or host:port."),
) -> None:
    """Print the SHA256 host key fingerprint of each target."""

    rows = probe_host_fingerprints(hosts)
    console.print(build_fingerprint_table(rows))


@app.command("probe")
def probe(
    ctx: typer.Context,
    host: str = typer.Argument(..., help="Host to probe."),
    ports: list[int] = typer.Argument(None, help="TCP ports (default: common management ports)."),
) -> None:
    """Classify TCP ports of a host as open, closed or filtered."""

    state = _state(ctx)
    selected = list(ports) if ports else list(DEFAULT_REPORT_PORTS)
    for port in selected:
        if not 1 <= port <= 65535:
            raise typer.BadParameter(f"invalid port: {port}")
    results = probe_ports(host, selected, timeout=state.settings.probe_timeout_seconds)
    console.print(build_probe_table(host, results))


def _zone_from_options(
    config: Path | None,
    name: str | None,
    domain: str | None,
    hostname: str | None,
    router_id: str | None,
    asn: int | None,
    gateway_subnet: str | None,
) -> Zone:
    zone = load_zone(config) if config else Zone(router=ZoneRouter())
    # flags override the config file
    if name is not None:
        zone.name = name
    if domain is not None:
        zone.domain = domain
    if hostname is not None:
        zone.router.hostname = hostname
    if router_id is not None:
        zone.router.id = router_id
    if asn is not None:
        zone.router.asn = asn
    if gateway_subnet is not None:
        zone.router.gateway_subnet = gateway_subnet
    return zone


@zone_app.command("up")
def zone_up(
    ctx: typer.Context,
    host: str = typer.Argument(..., help="Address of the new zone router."),
    name: str | None = typer.Option(None, "--name", "-n", help="Zone name."),
    domain: str | None = typer.Option(None, "--domain", "-d", help="DNS domain of the zone."),
    hostname: str | None = typer.Option(None, "--hostname", "-H", help="Router hostname."),
    router_id: str | None = typer.Option(None, "--router-id", "-r", help="Router ID (IPv4)."),
    asn: int | None = typer.Option(None, "--asn", "-a", help="Autonomous system number."),
    gateway_subnet: str | None = typer.Option(None, "--gateway-subnet", help="Gateway subnet (IPv4 CIDR)."),
    config: Path | None = typer.Option(None, "--config", "-c", help="Zone config file (JSON)."),
    user: str | None = typer.Option(None, "--user", "-u", help="SSH user (default: settings or local user)."),
    fingerprint: str = typer.Option("", "--fingerprint", help="Expected SSH host key fingerprint."),
) -> None:
    """Bootstrap a zone router: preflight checks, hostname and network interfaces."""

    state = _state(ctx)
    settings = state.settings
    logger = state.logger

    try:
        zone = _zone_from_options(config, name, domain, hostname, router_id, asn, gateway_subnet)
    except KrautError as exc:
        raise _fail(exc) from exc

    ssh_user = user or settings.ssh_default_user or getpass.getuser()

    def shell_factory(target: str) -> SSHClient:
        return SSHClient.dial(
            SSHConfig(
                host=target,
                user=ssh_user,
                fingerprint=fingerprint,
                use_user_keys=True,
                timeout=settings.ssh_connect_timeout_seconds,
            ),
            logger=logger,
        )

    pipeline = ZoneBootstrapPipeline(
        shell_factory=shell_factory,
        checkpoints=FileCheckpointStore(settings.resolved_checkpoint_dir()),
        environment=ZoneEnvironment(),
        probe_timeout=settings.probe_timeout_seconds,
        kube_api_port=settings.kube_api_port,
        logger=logger,
    )

    if settings.log_format == "console":
        print_banner(console)

    finished: list[StageResult] = []
    with console.status("Starting...", spinner="dots") as status:
        hooks = PipelineHooks(
            stage_started=lambda stage: status.update(f"Running [cyan]{stage}[/cyan]..."),
            stage_finished=finished.append,
        )
        try:
            pipeline.run(host, zone, hooks=hooks)
        except KrautError as exc:
            if finished:
                console.print(build_stages_table(finished))
            raise _fail(exc) from exc

    console.print(build_stages_table(finished))
    console.print(f"[green]zone {zone.name} is up on {host}[/green]")


@controller_app.command("run")
def controller_run(
    ctx: typer.Context,
    manifest: Path = typer.Argument(..., help="Manifest file (JSON) with hosts, firewalls and secrets."),
    once: bool = typer.Option(False, "--once", help="Reconcile every resource once and exit."),
    workers: int | None = typer.Option(None, "--workers", min=1, max=64, help="Worker threads per controller."),
) -> None:
    """Run the host and firewall controllers over a manifest."""

    state = _state(ctx)
    settings = state.settings
    if workers is not None:
        settings = settings.model_copy(update={"controller_workers": workers})

    try:
        resources = load_manifest(manifest)
    except KrautError as exc:
        raise _fail(exc) from exc

    store = InMemoryStore()
    recorder = InMemoryEventRecorder(state.logger.getChild("events"))
    manager = Manager(store, recorder, settings=settings, logger=state.logger)
    apply_manifest(store, resources)

    if once:
        manager.run_once()
    else:
        manager.start()
        console.print("[dim]controllers running, press Ctrl+C to stop[/dim]")
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            pass
        finally:
            manager.stop(timeout=settings.ssh_connect_timeout_seconds)

    console.print(build_hosts_table(store.list_hosts()))
    console.print(build_firewalls_table(store.list_firewalls()))
    events = recorder.events()
    if events:
        console.print(build_events_table(events))


def run() -> None:
    app()


__all__ = ["app", "run"]
