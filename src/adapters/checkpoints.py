"""Checkpoint stores: in memory, or one JSON file per target host."""

from __future__ import annotations

import threading
from pathlib import Path

from core.domain.provisioning import HostnameCheckpoint
from core.errors import CheckpointError, ManifestError


def _slug(value: str) -> str:
    out: list[str] = []
    for ch in value.strip():
        if ch.isalnum() or ch in ("-", "_", "."):
            out.append(ch)
        else:
            out.append("-")
    cleaned = "".join(out).strip("-_")
    return cleaned or "target"


class InMemoryCheckpointStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, HostnameCheckpoint] = {}

    def load(self, target: str) -> HostnameCheckpoint | None:
        with self._lock:
            item = self._items.get(target)
            return item.model_copy() if item else None

    def save(self, checkpoint: HostnameCheckpoint) -> None:
        with self._lock:
            self._items[checkpoint.target] = checkpoint.model_copy()

    def clear(self, target: str) -> None:
        with self._lock:
            self._items.pop(target, None)


class FileCheckpointStore:
    """Stores checkpoints under `<directory>/hostname-<target>.json`.

    Survives process restarts, so a `krt zone up` retry resumes where the
    previous run stopped. Filesystem failures surface as `CheckpointError`.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, target: str) -> Path:
        return self.directory / f"hostname-{_slug(target)}.json"

    def load(self, target: str) -> HostnameCheckpoint | None:
        path = self._path(target)
        try:
            if not path.exists():
                return None
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CheckpointError(f"failed to read checkpoint {path}: {exc}") from exc
        try:
            return HostnameCheckpoint.model_validate_json(raw)
        except ValueError as exc:
            raise ManifestError(f"corrupt checkpoint {path}: {exc}") from exc

    def save(self, checkpoint: HostnameCheckpoint) -> None:
        path = self._path(checkpoint.target)
        tmp = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(checkpoint.model_dump_json(indent=2) + "\n", encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise CheckpointError(f"failed to write checkpoint {path}: {exc}") from exc

    def clear(self, target: str) -> None:
        path = self._path(target)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise CheckpointError(f"failed to remove checkpoint {path}: {exc}") from exc
