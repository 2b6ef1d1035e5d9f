"""Remote shell contract used by provisioning steps."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class RemoteShell(Protocol):
    """A session able to run commands on one remote host, one at a time."""

    def run_command(self, command: str) -> tuple[str, str]:
        """Run `command` and return `(stdout, stderr)`.

        Raises `RemoteCommandError` on a nonzero exit status.
        """

        ...

    def close(self) -> None:
        ...
