"""Loading of resource manifests (JSON).

Format:

    {"hosts": [...], "firewalls": [...], "secrets": [...]}

Each entry is a Host/Firewall/Secret with `metadata`, `spec` and, for
secrets, `data`. camelCase keys are accepted.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from adapters.memory_store import InMemoryStore
from core.domain.models import Firewall, Host, Secret
from core.domain.zone import Zone
from core.errors import ManifestError


class Manifest(BaseModel):
    hosts: list[Host] = Field(default_factory=list)
    firewalls: list[Firewall] = Field(default_factory=list)
    secrets: list[Secret] = Field(default_factory=list)


def _read_json(path: Path) -> object:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"failed to read {path}: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"invalid JSON in {path}: {exc}") from exc


def load_manifest(path: Path) -> Manifest:
    data = _read_json(path)
    try:
        return Manifest.model_validate(data)
    except PydanticValidationError as exc:
        raise ManifestError(f"invalid manifest {path}: {exc}") from exc


def load_zone(path: Path) -> Zone:
    data = _read_json(path)
    try:
        return Zone.model_validate(data)
    except PydanticValidationError as exc:
        raise ManifestError(f"invalid zone config {path}: {exc}") from exc


def apply_manifest(store: InMemoryStore, manifest: Manifest) -> None:
    """Write every resource into the store. Secrets go first so hosts can resolve them."""

    for secret in manifest.secrets:
        store.put_secret(secret)
    for host in manifest.hosts:
        store.put_host(host)
    for firewall in manifest.firewalls:
        store.put_firewall(firewall)
