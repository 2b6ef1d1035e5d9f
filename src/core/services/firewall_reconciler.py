"""Firewall reconciliation: publish how many hosts enforce a firewall.

The pass is fail-closed. An invalid selector or a selected host with an
unsupported OS aborts the whole pass before anything is written, so the
published count never reflects only part of the fleet.

Only changes to the Firewall itself trigger this reconciler; host churn
does not, so `status.host_count` can lag behind until the next trigger.
"""

from __future__ import annotations

import logging

from core.domain.models import EventType, Firewall, FirewallStatus, Host, NamespacedName
from core.errors import CompatibilityError, NotFoundError, PatternError
from core.interfaces.store import EventRecorder, ResourceStore
from core.log import null_logger
from core.services.compatibility import check_host_compatibility
from core.services.selector import matches

REASON_INVALID_HOST_SELECTOR = "InvalidHostSelector"
REASON_HOST_INCOMPATIBLE = "HostIncompatible"


class FirewallReconciler:
    def __init__(
        self,
        store: ResourceStore,
        recorder: EventRecorder,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._logger = logger or null_logger()

    def select_hosts(self, firewall: Firewall, hosts: list[Host]) -> list[Host]:
        """Hosts matched by the selector, all of them compatible.

        Raises on the first invalid pattern or incompatible host.
        """

        selector = firewall.spec.host_selector.match_metadata
        selected: list[Host] = []
        for host in hosts:
            try:
                is_match = matches(selector, host.metadata)
            except PatternError as exc:
                self._recorder.event(firewall, EventType.WARNING, REASON_INVALID_HOST_SELECTOR, str(exc))
                raise

            if not is_match:
                continue

            try:
                check_host_compatibility(host)
            except CompatibilityError as exc:
                self._recorder.event(firewall, EventType.WARNING, REASON_HOST_INCOMPATIBLE, str(exc))
                raise

            selected.append(host)
        return selected

    def reconcile(self, request: NamespacedName) -> None:
        try:
            firewall = self._store.get_firewall(request)
        except NotFoundError:
            return

        selected = self.select_hosts(firewall, self._store.list_hosts())
        count = len(selected)

        if firewall.status.host_count == count:
            self._logger.debug("firewall %s unchanged: %d hosts", firewall.key, count)
            return

        firewall.status = FirewallStatus(host_count=count)
        try:
            self._store.update_firewall_status(firewall)
        except NotFoundError:
            return
        self._logger.info(
            "firewall %s now enforced by %d hosts: %s",
            firewall.key,
            count,
            ", ".join(str(h.key) for h in selected) or "-",
        )
