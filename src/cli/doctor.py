"""Doctor command for environment diagnostics."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from adapters.netutil import PORT_SSH, probe_tcp
from core.config import AppSettings, ZoneEnvironment, get_user_env_file, write_user_env_vars
from core.domain.models import ProbeStatus

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


def _user_private_keys() -> list[Path]:
    ssh_dir = Path.home() / ".ssh"
    if not ssh_dir.is_dir():
        return []
    keys: list[Path] = []
    for entry in sorted(ssh_dir.iterdir()):
        if entry.is_dir() or entry.suffix == ".pub":
            continue
        try:
            head = entry.read_text(encoding="utf-8", errors="ignore")[:64]
        except OSError:
            continue
        if "PRIVATE KEY" in head:
            keys.append(entry)
    return keys


def _check_writable(directory: Path) -> tuple[bool, str]:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        probe = directory / ".doctor"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        return True, str(directory)
    except OSError as exc:
        return False, str(exc)


@app.command()
def run(
    host: str | None = typer.Option(None, "--host", help="Also probe SSH reachability of this host."),
) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()
    environment = ZoneEnvironment()

    table = Table(title="kraut doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("Log format", "OK", f"{settings.log_format} ({settings.log_level})")
    table.add_row("SSH timeout", "OK", f"{settings.ssh_connect_timeout_seconds:g}s")

    missing = environment.missing()
    if missing:
        table.add_row("DNS provider", "MISSING", "Set " + ", ".join(missing) + " (env or ./.env) for `zone up`")
    else:
        table.add_row("DNS provider", "OK", environment.dns_provider or "")

    keys = _user_private_keys()
    if keys:
        table.add_row("SSH keys", "OK", ", ".join(k.name for k in keys))
    else:
        table.add_row("SSH keys", "FAIL", "No private keys in ~/.ssh -> `zone up` cannot authenticate")

    ok_dir, detail_dir = _check_writable(settings.resolved_checkpoint_dir())
    table.add_row("Checkpoints", "OK" if ok_dir else "FAIL", detail_dir)

    if host:
        status = probe_tcp(host, PORT_SSH, timeout=settings.probe_timeout_seconds)
        table.add_row(
            "SSH reachability",
            "OK" if status is ProbeStatus.OPEN else "FAIL",
            f"{host}:{PORT_SSH}/tcp {status.value}",
        )

    _console.print(table)


@app.command(name="setup")
def setup() -> None:
    """Interactive setup of non-secret defaults (stored in the user config .env).

    DNS provider credentials are deliberately not handled here; export them
    or put them in a `.env` next to where `krt` runs.
    """

    user = typer.prompt("Default SSH user", default="", show_default=False).strip()
    timeout = typer.prompt("SSH connect timeout (seconds)", default="10").strip()
    log_format = typer.prompt("Log format (console/json)", default="console").strip().lower()

    if log_format not in ("console", "json"):
        raise typer.BadParameter("log format must be 'console' or 'json'")
    try:
        if float(timeout) <= 0:
            raise ValueError(timeout)
    except ValueError:
        raise typer.BadParameter("timeout must be a positive number") from None

    env_path = write_user_env_vars(
        {
            "KRAUT_SSH_DEFAULT_USER": user or None,
            "KRAUT_SSH_CONNECT_TIMEOUT_SECONDS": timeout,
            "KRAUT_LOG_FORMAT": log_format,
        }
    )

    _console.print(f"[green]Saved config to:[/green] {env_path}")
    if env_path != get_user_env_file():  # pragma: no cover
        _console.print("[yellow]Note:[/yellow] unexpected config location")
