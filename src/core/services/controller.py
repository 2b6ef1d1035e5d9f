"""Controller runtime: work queues, workers and wiring to the store.

Guarantees provided here rather than assumed from a surrounding framework:

- at most one in-flight reconcile per key: a key handed to a worker is not
  handed out again until `done`; re-adds in the meantime are deferred;
- at-least-once: a key added while being processed is processed again;
- retries: failed keys are re-added with per-key exponential backoff.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, Hashable

from adapters.management import new_client
from core.config import AppSettings
from core.domain.models import Firewall, Host, NamespacedName, Secret
from core.errors import KrautError, ValidationError
from core.interfaces.store import EventRecorder, ResourceStore
from core.log import null_logger
from core.services.firewall_reconciler import FirewallReconciler
from core.services.host_reconciler import ClientFactory, HostReconciler

BASE_RETRY_DELAY_SECONDS = 0.005
MAX_RETRY_DELAY_SECONDS = 1000.0


class WorkQueue:
    """Deduplicating, per-key exclusive queue with delayed re-adds."""

    def __init__(
        self,
        *,
        base_delay: float = BASE_RETRY_DELAY_SECONDS,
        max_delay: float = MAX_RETRY_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._seq = itertools.count()
        self._failures: dict[Hashable, int] = {}
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._clock = clock
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, key: Hashable) -> None:
        with self._cond:
            self._add_locked(key)

    def _add_locked(self, key: Hashable) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (self._clock() + delay, next(self._seq), key))
            self._cond.notify_all()

    def backoff(self, key: Hashable) -> float:
        """Delay for the next retry of `key`, doubling on every failure."""

        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self._base_delay * (2**failures), self._max_delay)

    def add_rate_limited(self, key: Hashable) -> None:
        self.add_after(key, self.backoff(key))

    def forget(self, key: Hashable) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def _promote_ready(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._add_locked(key)

    def get(self, timeout: float | None = None, *, include_delayed: bool = True) -> Hashable | None:
        """Next ready key, or None on shutdown or when `timeout` expires.

        With `include_delayed=False` keys waiting for a retry are left alone.
        """

        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                if include_delayed:
                    self._promote_ready()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutting_down:
                    return None

                now = self._clock()
                wait_for: float | None = None
                if self._waiting and include_delayed:
                    wait_for = max(self._waiting[0][0] - now, 0.0)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait_for = remaining if wait_for is None else min(wait_for, remaining)
                self._cond.wait(wait_for)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    def idle(self) -> bool:
        """No ready, in-flight or delayed keys."""

        with self._cond:
            return not (self._queue or self._processing or self._waiting)


class Controller:
    """Runs one reconcile function over a work queue with worker threads."""

    def __init__(
        self,
        name: str,
        reconcile: Callable[[NamespacedName], None],
        *,
        logger: logging.Logger | None = None,
        workers: int = 1,
        queue: WorkQueue | None = None,
    ) -> None:
        self.name = name
        self.queue = queue or WorkQueue()
        self._reconcile = reconcile
        self._logger = logger or null_logger()
        self._workers = workers
        self._threads: list[threading.Thread] = []

    def enqueue(self, key: NamespacedName) -> None:
        self.queue.add(key)

    def process_next_item(self, timeout: float | None = None, *, include_delayed: bool = True) -> bool:
        key = self.queue.get(timeout, include_delayed=include_delayed)
        if key is None:
            return False
        try:
            self._reconcile(key)  # type: ignore[arg-type]
        except ValidationError as exc:
            # waits for the declared intent to change
            self._logger.error("%s: %s: %s", self.name, key, exc)
            self.queue.forget(key)
        except KrautError as exc:
            self._logger.warning("%s: %s: %s (retry %d)", self.name, key, exc, self.queue.num_requeues(key) + 1)
            self.queue.add_rate_limited(key)
        except Exception:
            self._logger.exception("%s: unexpected error reconciling %s", self.name, key)
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    def drain(self) -> int:
        """Process ready keys on the calling thread until none is left.

        Delayed retries are not waited for. Returns the number processed.
        """

        processed = 0
        while self.process_next_item(timeout=0, include_delayed=False):
            processed += 1
        return processed

    def _worker(self) -> None:
        while self.process_next_item():
            pass

    def start(self) -> None:
        for i in range(self._workers):
            thread = threading.Thread(target=self._worker, name=f"{self.name}-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        self._logger.debug("%s started with %d workers", self.name, self._workers)

    def stop(self, timeout: float | None = None) -> None:
        self.queue.shut_down()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()


class Manager:
    """Wires the host and firewall controllers to store change notifications.

    - Host changes enqueue the Host.
    - Secret changes enqueue every Host referencing the secret by name.
    - Firewall changes enqueue the Firewall. Host changes do not.
    """

    def __init__(
        self,
        store: ResourceStore,
        recorder: EventRecorder,
        *,
        settings: AppSettings | None = None,
        logger: logging.Logger | None = None,
        client_factory: ClientFactory = new_client,
    ) -> None:
        settings = settings or AppSettings()
        self._logger = logger or null_logger()
        self._store = store

        self.host_reconciler = HostReconciler(
            store,
            recorder,
            client_factory=client_factory,
            logger=self._logger.getChild("host"),
            connect_timeout=settings.ssh_connect_timeout_seconds,
        )
        self.firewall_reconciler = FirewallReconciler(
            store,
            recorder,
            logger=self._logger.getChild("firewall"),
        )
        self.host_controller = Controller(
            "host-controller",
            self.host_reconciler.reconcile,
            logger=self._logger,
            workers=settings.controller_workers,
        )
        self.firewall_controller = Controller(
            "firewall-controller",
            self.firewall_reconciler.reconcile,
            logger=self._logger,
            workers=settings.controller_workers,
        )
        store.subscribe(self.on_change)

    def on_change(self, kind: str, key: NamespacedName) -> None:
        if kind == Host.kind:
            self.host_controller.enqueue(key)
        elif kind == Secret.kind:
            for request in self.host_reconciler.requests_for_secret(key):
                self.host_controller.enqueue(request)
        elif kind == Firewall.kind:
            self.firewall_controller.enqueue(key)

    def enqueue_all(self) -> None:
        """Initial sync: enqueue every existing resource."""

        for host in self._store.list_hosts():
            self.host_controller.enqueue(host.key)
        for firewall in self._store.list_firewalls():
            self.firewall_controller.enqueue(firewall.key)

    def run_once(self) -> None:
        """One synchronous pass: hosts first, then firewalls."""

        self.enqueue_all()
        self.host_controller.drain()
        self.firewall_controller.drain()

    def start(self) -> None:
        self.enqueue_all()
        self.host_controller.start()
        self.firewall_controller.start()

    def stop(self, timeout: float | None = None) -> None:
        self.host_controller.stop(timeout)
        self.firewall_controller.stop(timeout)
