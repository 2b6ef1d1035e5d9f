"""Management client contract.

A management client is the capability reconcilers use to reach a host:
connect (which eagerly probes the operating system), read the probed OS,
disconnect. Transport variants (today only SSH) implement it structurally.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import OSInfo


@runtime_checkable
class ManagementClient(Protocol):
    """Connect/probe/disconnect capability for one host.

    Rules:
    - `connect` is not lazy: when it returns, `current_os` is populated.
    - `disconnect` is safe to call when `connect` failed or never ran.
    - Instances are owned by a single reconcile invocation and never reused.
    """

    def connect(self) -> None:
        ...

    def disconnect(self) -> None:
        ...

    def current_os(self) -> OSInfo:
        ...
