"""
Runs reconcilers on a bounded pool of worker threads.

Keys (``namespace/name``) come from a periodic resync that lists every
StatefulMigration; this level-triggered source also catches drift that
never produces an event. Each controller has its own queue, so the
backup and restore controllers never block each other.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Protocol

import requests

from .client import KubeClient, resource_path
from .controller import ReconcileResult
from .models import MIGRATION_API_VERSION, STATEFUL_MIGRATION_PLURAL
from .workqueue import WorkQueue

__all__ = ["ControllerManager", "Reconciler", "list_migration_keys", "split_key"]

logger = logging.getLogger(__name__)


class Reconciler(Protocol):
    def reconcile(self, namespace: str, name: str) -> ReconcileResult: ...


def split_key(key: str) -> tuple[str, str]:
    namespace, _, name = key.partition("/")
    return namespace, name


def list_migration_keys(api: KubeClient, namespace: str = "") -> list[str]:
    """``namespace/name`` of every StatefulMigration (all namespaces if empty)."""
    path = resource_path(MIGRATION_API_VERSION, STATEFUL_MIGRATION_PLURAL, namespace or None)
    keys = []
    for item in api.list(path):
        meta = item.get("metadata") or {}
        keys.append(f"{meta.get('namespace', '')}/{meta.get('name', '')}")
    return keys


@dataclass
class _Registration:
    name: str
    reconciler: Reconciler
    workers: int
    queue: WorkQueue = field(default_factory=WorkQueue)


class ControllerManager:
    """Owns the queues, worker threads and resync loop."""

    def __init__(
        self,
        list_keys: Callable[[], list[str]],
        resync_seconds: float = 30.0,
    ):
        self._list_keys = list_keys
        self.resync_seconds = resync_seconds
        self._controllers: list[_Registration] = []
        self._threads: list[threading.Thread] = []
        self._stop = threading.Event()

    def add_controller(self, name: str, reconciler: Reconciler, workers: int = 1) -> WorkQueue:
        reg = _Registration(name=name, reconciler=reconciler, workers=max(1, workers))
        self._controllers.append(reg)
        return reg.queue

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_next(self, reg: _Registration, timeout: float | None = None) -> bool:
        """Handle one key from *reg*'s queue. Returns False on shutdown/timeout."""
        key = reg.queue.get(timeout=timeout)
        if key is None:
            return False
        namespace, name = split_key(key)
        try:
            result = reg.reconciler.reconcile(namespace, name)
        except Exception as exc:
            delay = reg.queue.add_rate_limited(key)
            logger.error(
                "[%s] reconcile of %s failed (retry in %.3fs): %s",
                reg.name, key, delay, exc,
            )
            logger.debug("[%s] traceback for %s", reg.name, key, exc_info=True)
        else:
            reg.queue.forget(key)
            if result.requeue_after:
                reg.queue.add_after(key, result.requeue_after)
        finally:
            reg.queue.done(key)
        return True

    def _worker(self, reg: _Registration) -> None:
        while self.process_next(reg):
            pass
        logger.debug("[%s] worker exiting", reg.name)

    def resync(self) -> int:
        """Enqueue every known key on every controller; returns the key count."""
        keys = self._list_keys()
        for reg in self._controllers:
            for key in keys:
                reg.queue.add(key)
        logger.debug("Resync enqueued %d key(s)", len(keys))
        return len(keys)

    def _resync_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.resync()
            except requests.RequestException as exc:
                logger.warning("Resync failed: %s", exc)
            self._stop.wait(self.resync_seconds)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        for reg in self._controllers:
            for i in range(reg.workers):
                t = threading.Thread(
                    target=self._worker, args=(reg,),
                    name=f"{reg.name}-worker-{i}", daemon=True,
                )
                t.start()
                self._threads.append(t)
            logger.info("Started controller %s with %d worker(s)", reg.name, reg.workers)
        t = threading.Thread(target=self._resync_loop, name="resync", daemon=True)
        t.start()
        self._threads.append(t)

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        for reg in self._controllers:
            reg.queue.shut_down()
        for t in self._threads:
            t.join(timeout)
        logger.info("Controller manager stopped")

    def wait(self) -> None:
        """Block until :meth:`stop` is called."""
        while not self._stop.wait(1.0):
            pass
