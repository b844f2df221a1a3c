"""Tests for the controller manager's processing loop and resync."""

from __future__ import annotations

import pytest

from stateful_migrator.client import resource_path
from stateful_migrator.controller import ReconcileResult
from stateful_migrator.manager import ControllerManager, list_migration_keys, split_key

from .fakes import make_migration


class RecordingReconciler:
    def __init__(self, result=None, error=None):
        self.result = result or ReconcileResult()
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def reconcile(self, namespace, name):
        self.calls.append((namespace, name))
        if self.error is not None:
            raise self.error
        return self.result


def _manager(keys=("default/mig1",)):
    return ControllerManager(list_keys=lambda: list(keys), resync_seconds=60)


def test_split_key():
    assert split_key("default/mig1") == ("default", "mig1")


def test_list_migration_keys(api, api_server):
    api_server.seed(
        resource_path("migration.dcnlab.com/v1", "statefulmigrations", "default"), make_migration("a"),
    )
    api_server.seed(
        resource_path("migration.dcnlab.com/v1", "statefulmigrations", "team"), make_migration("b", namespace="team"),
    )

    assert list_migration_keys(api) == ["default/a", "team/b"]
    assert list_migration_keys(api, "team") == ["team/b"]


def test_resync_feeds_every_controller():
    manager = _manager(keys=("default/a", "default/b"))
    backup_q = manager.add_controller("backup", RecordingReconciler())
    restore_q = manager.add_controller("restore", RecordingReconciler())

    assert manager.resync() == 2
    assert len(backup_q) == 2
    assert len(restore_q) == 2


def test_success_schedules_requeue(monkeypatch):
    manager = _manager()
    reconciler = RecordingReconciler(result=ReconcileResult(requeue_after=300))
    queue = manager.add_controller("backup", reconciler)
    scheduled = []
    monkeypatch.setattr(queue, "add_after", lambda key, delay: scheduled.append((key, delay)))
    manager.resync()

    assert manager.process_next(manager._controllers[0], timeout=0) is True

    assert reconciler.calls == [("default", "mig1")]
    assert scheduled == [("default/mig1", 300)]
    assert queue.num_requeues("default/mig1") == 0


def test_success_without_requeue():
    manager = _manager()
    queue = manager.add_controller("restore", RecordingReconciler())
    manager.resync()

    manager.process_next(manager._controllers[0], timeout=0)

    assert len(queue) == 0
    assert queue.get(timeout=0) is None


def test_failure_is_rate_limited():
    manager = _manager()
    queue = manager.add_controller("backup", RecordingReconciler(error=RuntimeError("boom")))
    manager.resync()

    manager.process_next(manager._controllers[0], timeout=0)
    manager.process_next(manager._controllers[0], timeout=1)

    assert queue.num_requeues("default/mig1") == 2


def test_failure_then_success_forgets_backoff():
    manager = _manager()
    reconciler = RecordingReconciler(error=RuntimeError("boom"))
    queue = manager.add_controller("backup", reconciler)
    manager.resync()
    manager.process_next(manager._controllers[0], timeout=0)

    reconciler.error = None
    manager.process_next(manager._controllers[0], timeout=1)

    assert queue.num_requeues("default/mig1") == 0
    assert len(reconciler.calls) == 2


def test_process_next_on_empty_queue():
    manager = _manager()
    manager.add_controller("backup", RecordingReconciler())
    assert manager.process_next(manager._controllers[0], timeout=0) is False


def test_start_and_stop():
    manager = _manager()
    reconciler = RecordingReconciler()
    manager.add_controller("backup", reconciler, workers=2)

    manager.start()
    manager.stop(timeout=5)

    assert all(not t.is_alive() for t in manager._threads)


@pytest.mark.parametrize("workers", [0, -1])
def test_worker_count_is_at_least_one(workers):
    manager = _manager()
    manager.add_controller("backup", RecordingReconciler(), workers=workers)
    assert manager._controllers[0].workers == 1
