"""Provisioning state: network interfaces and bootstrap checkpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntFlag

from pydantic import BaseModel, Field


class LinkFlag(IntFlag):
    """Subset of Linux `IFF_*` interface flags (see /sys/class/net/<if>/flags)."""

    UP = 0x1
    BROADCAST = 0x2
    LOOPBACK = 0x8
    POINT_TO_POINT = 0x10
    RUNNING = 0x40
    MULTICAST = 0x1000

    @classmethod
    def from_raw(cls, raw: int) -> LinkFlag:
        flags = cls(0)
        for flag in cls:
            if raw & flag.value:
                flags |= flag
        return flags


class NetInterface(BaseModel):
    name: str
    index: int = 0
    mtu: int = 0
    hardware_addr: str = ""
    raw_flags: int = 0
    physical: bool = True

    @property
    def flags(self) -> LinkFlag:
        return LinkFlag.from_raw(self.raw_flags)

    @property
    def is_loopback(self) -> bool:
        return bool(self.raw_flags & LinkFlag.LOOPBACK)


class HostnameStep(str, Enum):
    """Progress of the two-step hostname change."""

    # recorded before `hostnamectl` runs; the rename may or may not have applied
    RENAMING = "renaming"
    # `hostnamectl` applied, /etc/hosts not yet rewritten
    RENAMED = "renamed"
    HOSTS_FILE_UPDATED = "hosts-file-updated"


class HostnameCheckpoint(BaseModel):
    target: str = Field(..., min_length=1, description="Host the checkpoint belongs to.")
    previous: str = Field(..., description="Hostname before the rename.")
    desired: str = Field(..., min_length=1)
    step: HostnameStep
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
