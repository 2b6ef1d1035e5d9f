"""Checkpoint storage contract for multi-step remote mutations."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.provisioning import HostnameCheckpoint


@runtime_checkable
class CheckpointStore(Protocol):
    def load(self, target: str) -> HostnameCheckpoint | None:
        ...

    def save(self, checkpoint: HostnameCheckpoint) -> None:
        ...

    def clear(self, target: str) -> None:
        ...
