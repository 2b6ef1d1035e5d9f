"""Zone bootstrap orchestration.

Drives a new router host toward the declared zone configuration through a
fixed, forward-only sequence of stages:

1. validate         zone config and environment, no network I/O
2. preflight-ssh    port 22 must be `open`
3. preflight-api    API server port must be `open` or `filtered`
4. hostname         hostnamectl + /etc/hosts, checkpointed
5. loopback         router ID on the loopback interface
6. dhcp             DHCP on unconfigured physical interfaces
7. wan              default-route interface pinned as `wan`

Each remote stage opens its own session and closes it on every exit path.
A failed stage stops the pipeline; re-running it from the top is safe
because every stage is idempotent.
"""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass, field
from typing import Callable

from adapters.netutil import PORT_KUBE_API, PORT_SSH, PROBE_TIMEOUT_SECONDS, probe_tcp
from core.config import ZoneEnvironment
from core.domain.models import ProbeStatus
from core.domain.zone import Zone
from core.errors import PreflightError, ZoneValidationError
from core.interfaces.checkpoints import CheckpointStore
from core.interfaces.shell import RemoteShell
from core.log import null_logger
from core.services import provisioning

Prober = Callable[..., ProbeStatus]
ShellFactory = Callable[[str], RemoteShell]


@dataclass
class StageResult:
    name: str
    changed: bool = False
    detail: str = ""


@dataclass
class PipelineHooks:
    """Optional callbacks for UI layers (progress)."""

    stage_started: Callable[[str], None] | None = None
    stage_finished: Callable[[StageResult], None] | None = None


@dataclass
class PipelineResult:
    host: str
    zone: Zone
    stages: list[StageResult] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(stage.changed for stage in self.stages)


def preflight_check_ssh(
    host: str,
    *,
    prober: Prober = probe_tcp,
    port: int = PORT_SSH,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> ProbeStatus:
    """An SSH server must be listening: the port has to be `open`."""

    status = prober(host, port, timeout=timeout)
    if status is not ProbeStatus.OPEN:
        raise PreflightError(f"failed to perform preflight check: port {port}/tcp is {status.value}")
    return status


def preflight_check_kube_api(
    host: str,
    *,
    prober: Prober = probe_tcp,
    port: int = PORT_KUBE_API,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> ProbeStatus:
    """No API server is expected yet, but a firewall that rejects is.

    `open` and `filtered` pass; `closed` (packets dropped) fails.
    """

    status = prober(host, port, timeout=timeout)
    if status not in (ProbeStatus.OPEN, ProbeStatus.FILTERED):
        raise PreflightError(f"failed to perform preflight check: port {port}/tcp is {status.value}")
    return status


class ZoneBootstrapPipeline:
    def __init__(
        self,
        *,
        shell_factory: ShellFactory,
        checkpoints: CheckpointStore,
        environment: ZoneEnvironment | None = None,
        prober: Prober = probe_tcp,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        kube_api_port: int = PORT_KUBE_API,
        logger: logging.Logger | None = None,
    ) -> None:
        self._shell_factory = shell_factory
        self._checkpoints = checkpoints
        self._environment = environment
        self._prober = prober
        self._probe_timeout = probe_timeout
        self._kube_api_port = kube_api_port
        self._logger = logger or null_logger()

    def stages(self) -> list[tuple[str, Callable[[str, Zone], StageResult]]]:
        return [
            ("validate", self._validate),
            ("preflight-ssh", self._preflight_ssh),
            ("preflight-api", self._preflight_api),
            ("hostname", self._hostname),
            ("loopback", self._loopback),
            ("dhcp", self._dhcp),
            ("wan", self._wan),
        ]

    def run(self, host: str, zone: Zone, *, hooks: PipelineHooks | None = None) -> PipelineResult:
        hooks = hooks or PipelineHooks()
        result = PipelineResult(host=host, zone=zone)
        for name, stage in self.stages():
            if hooks.stage_started:
                hooks.stage_started(name)
            self._logger.debug("stage %s started", name)
            outcome = stage(host, zone)
            result.stages.append(outcome)
            self._logger.info("stage %s: %s", name, "changed" if outcome.changed else "ok")
            if hooks.stage_finished:
                hooks.stage_finished(outcome)
        return result

    def _validate(self, host: str, zone: Zone) -> StageResult:
        problems = zone.problems()
        if self._environment is not None:
            problems.extend(f"{name} must be set in the environment" for name in self._environment.missing())
        if not host.strip():
            problems.append("target host is required")
        if problems:
            raise ZoneValidationError(problems)
        return StageResult("validate", detail=f"zone {zone.name} ({zone.domain})")

    def _preflight_ssh(self, host: str, zone: Zone) -> StageResult:
        status = preflight_check_ssh(host, prober=self._prober, timeout=self._probe_timeout)
        return StageResult("preflight-ssh", detail=f"{PORT_SSH}/tcp {status.value}")

    def _preflight_api(self, host: str, zone: Zone) -> StageResult:
        status = preflight_check_kube_api(
            host,
            prober=self._prober,
            port=self._kube_api_port,
            timeout=self._probe_timeout,
        )
        return StageResult("preflight-api", detail=f"{self._kube_api_port}/tcp {status.value}")

    def _hostname(self, host: str, zone: Zone) -> StageResult:
        desired = zone.router.hostname
        with closing(self._shell_factory(host)) as shell:
            changed = provisioning.converge_hostname(
                shell,
                desired,
                target=host,
                checkpoints=self._checkpoints,
                logger=self._logger,
            )
        return StageResult("hostname", changed=changed, detail=desired)

    def _loopback(self, host: str, zone: Zone) -> StageResult:
        with closing(self._shell_factory(host)) as shell:
            changed = provisioning.configure_loopback_interface(shell, zone.router.router_id, logger=self._logger)
        return StageResult("loopback", changed=changed, detail=f"{zone.router.id}/32")

    def _dhcp(self, host: str, zone: Zone) -> StageResult:
        with closing(self._shell_factory(host)) as shell:
            changed = provisioning.configure_dhcp_client(shell, logger=self._logger)
        return StageResult("dhcp", changed=changed)

    def _wan(self, host: str, zone: Zone) -> StageResult:
        with closing(self._shell_factory(host)) as shell:
            changed = provisioning.configure_wan_interface(shell, logger=self._logger)
        return StageResult("wan", changed=changed, detail=provisioning.WAN_INTERFACE)
