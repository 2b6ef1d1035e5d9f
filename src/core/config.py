"""Configuration of the core.

- Centralizes environment variables (pydantic-settings) away from the CLI.
- Adapters (SSH, probes, checkpoints) read the same typed settings object.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

from dotenv import set_key
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "kraut"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "kraut"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "kraut"
    return Path.home() / ".config" / "kraut"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def write_user_env_vars(values: dict[str, str | None], env_path: Path | None = None) -> Path:
    """Set variables in the user's global .env. `None` leaves a key untouched."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.touch(exist_ok=True)

    for key, value in sorted(values.items()):
        if value is not None:
            set_key(env_path, key, value, quote_mode="never")
    return env_path


class AppSettings(BaseSettings):
    """Central application settings.

    Values come from `KRAUT_*` environment variables, the project `.env`
    and finally the `.env` in the user config directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="KRAUT_",
        extra="ignore",
        case_sensitive=False,
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    ssh_connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for establishing an SSH connection (seconds).",
    )
    ssh_default_user: str | None = Field(
        default=None,
        description="User for operator SSH sessions. Defaults to the local user.",
    )
    probe_timeout_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Budget of a TCP reachability probe (seconds).",
    )
    kube_api_port: int = Field(
        default=7443,
        ge=1,
        le=65535,
        description="Port of the Kubernetes API server on zone routers.",
    )
    controller_workers: int = Field(
        default=2,
        ge=1,
        le=64,
        description="Worker threads per controller.",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level name (DEBUG, INFO, WARNING, ERROR).",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Console output (rich) or JSON lines for log shippers.",
    )
    checkpoint_dir: Path | None = Field(
        default=None,
        description="Directory for bootstrap checkpoints. Defaults to the user config dir.",
    )

    def resolved_checkpoint_dir(self) -> Path:
        return self.checkpoint_dir or (get_user_config_dir() / "checkpoints")


class ZoneEnvironment(BaseSettings):
    """Secrets required to bootstrap a zone.

    Only read from the process environment or a `.env` file in the working
    directory, never from command-line flags, so credentials do not leak
    through process listings.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    dns_provider: str | None = Field(
        default=None,
        description="Identifier of the DNS provider managing the zone records.",
    )
    dns_provider_credential: str | None = Field(
        default=None,
        repr=False,
        description="Credential for the DNS provider.",
    )

    def missing(self) -> list[str]:
        out: list[str] = []
        if not (self.dns_provider or "").strip():
            out.append("DNS_PROVIDER")
        if not (self.dns_provider_credential or "").strip():
            out.append("DNS_PROVIDER_CREDENTIAL")
        return out
