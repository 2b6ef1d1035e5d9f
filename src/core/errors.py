"""Error taxonomy shared by the core and the adapters.

Reconcilers and the zone pipeline only ever raise subclasses of `KrautError`,
so the CLI and the controller runtime can tell expected failures (retry,
abort, report) apart from programming errors.
"""

from __future__ import annotations


class KrautError(Exception):
    """Base class for all expected failures."""


class ValidationError(KrautError):
    """Declared intent is malformed. Never retried automatically."""


class PatternError(ValidationError):
    """A selector pattern does not compile as a regular expression."""


class ZoneValidationError(ValidationError):
    """The zone configuration is structurally invalid."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("invalid zone: " + "; ".join(self.problems))


class ManifestError(ValidationError):
    """A resource manifest could not be parsed."""


class UnknownProtocolError(ValidationError):
    """No management client is registered for the declared protocol."""

    def __init__(self, protocol: object) -> None:
        self.protocol = protocol
        super().__init__(f"unknown protocol: {protocol}")


class NotFoundError(KrautError):
    """A referenced resource does not exist in the store."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"failed to read {kind}: {key}")


class ConnectivityError(KrautError):
    """Dialing, authenticating or talking to a remote host failed."""


class PreflightError(ConnectivityError):
    """A preflight reachability check did not see the expected port state."""


class RemoteCommandError(ConnectivityError):
    """A remote command exited with a nonzero status."""

    def __init__(self, command: str, exit_status: int, stderr: str = "") -> None:
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr.strip()
        message = f"remote command failed (exit {exit_status}): {command}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class ProvisioningError(KrautError):
    """The remote host is in a state a provisioning step cannot converge from."""


class CompatibilityError(KrautError):
    """The observed operating system of a host is not supported."""


class PartialMutationError(KrautError):
    """A multi-step remote mutation stopped after some steps were applied.

    The remote host is left in an intermediate state. The recorded
    checkpoint lets a retry resume at the step that failed.
    """

    def __init__(self, step: str, cause: Exception) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"partially applied, failed at step {step!r}: {cause}")


class CheckpointError(KrautError):
    """Bootstrap progress could not be read from or written to the checkpoint store."""
